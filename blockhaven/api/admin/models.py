from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CommandRequest(BaseModel):
    command: Optional[str] = None
    args: Optional[str] = None


class ServerActionResponse(CamelModel):
    success: bool
    message: str
    current_state: Optional[str] = None
    previous_state: Optional[str] = None


class InstanceStatus(CamelModel):
    state: str
    public_ip: Optional[str] = None
    instance_id: str
    launch_time: Optional[str] = None
    uptime_seconds: Optional[int] = None


class PlayerCounts(CamelModel):
    online: int
    max: int
    list: List[str]


class GameServerStatus(CamelModel):
    online: bool
    players: PlayerCounts
    version: Optional[str] = None
    motd: Optional[str] = None


class StatusResponse(CamelModel):
    ec2: InstanceStatus
    minecraft: Optional[GameServerStatus] = None
    timestamp: str


class LogLine(CamelModel):
    timestamp: str
    message: str
    level: str


class LogsResponse(CamelModel):
    logs: List[LogLine]
    count: int
    timestamp: str
    message: Optional[str] = None
