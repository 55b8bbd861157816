"""Minecraft server status via the mcstatus.io API."""
import logging
from urllib.parse import quote

import httpx

from blockhaven.domain.interfaces import GameStatus, GameStatusProbe

logger = logging.getLogger(__name__)


class McStatusProbe(GameStatusProbe):
    def __init__(self, api_url: str = "https://api.mcstatus.io/v2/status/java", timeout: float = 5.0, transport=None):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def probe(self, address: str) -> GameStatus:
        url = f"{self.api_url}/{quote(address, safe='')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url)
            if resp.status_code != 200:
                logger.info(f"mcstatus.io returned {resp.status_code} for {address}")
                return GameStatus(online=False)
            data = resp.json()
        except httpx.TimeoutException:
            logger.info(f"mcstatus.io timeout for {address}")
            return GameStatus(online=False)
        except (httpx.HTTPError, ValueError) as e:
            logger.info(f"Error fetching game status: {e}")
            return GameStatus(online=False)

        if not data.get("online"):
            return GameStatus(online=False)

        players = data.get("players") or {}
        return GameStatus(
            online=True,
            players_online=players.get("online") or 0,
            players_max=players.get("max") or 0,
            player_list=[p.get("name_clean") for p in players.get("list") or [] if p.get("name_clean")],
            version=(data.get("version") or {}).get("name_clean"),
            motd=(data.get("motd") or {}).get("clean"),
        )
