"""Domain interfaces for remote collaborators."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class InstanceDescription:
    instance_id: str
    state: str
    public_ip: Optional[str] = None
    launch_time: Optional[datetime] = None


@dataclass
class StateChange:
    instance_id: str
    current_state: Optional[str]
    previous_state: Optional[str]


@dataclass
class LogEntry:
    timestamp: str
    message: str
    level: str


@dataclass
class GameStatus:
    online: bool
    players_online: int = 0
    players_max: int = 0
    player_list: List[str] = field(default_factory=list)
    version: Optional[str] = None
    motd: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "online": self.online,
            "players": {
                "online": self.players_online,
                "max": self.players_max,
                "list": list(self.player_list),
            },
            "version": self.version,
            "motd": self.motd,
        }


class InstanceController(ABC):
    """Compute instance control plane."""

    @abstractmethod
    async def describe(self) -> InstanceDescription: pass

    @abstractmethod
    async def start(self) -> StateChange: pass

    @abstractmethod
    async def stop(self) -> StateChange:
        """Request a graceful (non-forced) shutdown."""


class LogSource(ABC):
    @abstractmethod
    async def fetch(self, line_count: int) -> List[LogEntry]:
        """Return the latest log lines, oldest first."""


class GameStatusProbe(ABC):
    @abstractmethod
    async def probe(self, address: str) -> GameStatus:
        """Return game server status; offline status on any error."""
