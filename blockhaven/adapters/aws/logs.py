"""CloudWatch Logs adapter for Minecraft server logs."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from blockhaven.adapters.aws.session import error_code
from blockhaven.domain.interfaces import LogEntry, LogSource
from blockhaven.errors import LogSourceNotConfigured, UpstreamUnavailable

logger = logging.getLogger(__name__)


def parse_log_level(message: str) -> str:
    upper = message.upper()
    if "[ERROR]" in upper or "/ERROR]" in upper or "ERROR:" in upper or " ERROR " in upper:
        return "ERROR"
    if "[WARN]" in upper or "/WARN]" in upper or "WARN:" in upper or " WARN " in upper:
        return "WARN"
    if "[DEBUG]" in upper or "DEBUG:" in upper:
        return "DEBUG"
    return "INFO"


def iso_timestamp(epoch_ms: Optional[int] = None) -> str:
    """RFC3339 UTC with exactly 3 fractional digits."""
    if epoch_ms is None:
        ts = datetime.now(timezone.utc)
    else:
        ts = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'


class CloudWatchLogSource(LogSource):
    def __init__(self, client, log_group: str):
        self.client = client
        self.log_group = log_group

    async def fetch(self, line_count: int = 100) -> List[LogEntry]:
        try:
            streams = await asyncio.to_thread(
                self.client.describe_log_streams,
                logGroupName=self.log_group,
                orderBy="LastEventTime",
                descending=True,
                limit=1,
            )
            latest = (streams.get("logStreams") or [{}])[0]
            stream_name = latest.get("logStreamName")
            if not stream_name:
                logger.info(f"No log streams found in group: {self.log_group}")
                return []

            response = await asyncio.to_thread(
                self.client.get_log_events,
                logGroupName=self.log_group,
                logStreamName=stream_name,
                limit=line_count,
                startFromHead=False,
            )
        except ClientError as e:
            if error_code(e) == "ResourceNotFoundException":
                logger.info(f"Log group not found: {self.log_group}")
                raise LogSourceNotConfigured("Log group not configured") from e
            raise UpstreamUnavailable(str(e)) from e
        except BotoCoreError as e:
            raise UpstreamUnavailable(str(e)) from e

        entries = [
            LogEntry(
                timestamp=iso_timestamp(event.get("timestamp")),
                message=event.get("message") or "",
                level=parse_log_level(event.get("message") or ""),
            )
            for event in response.get("events") or []
        ]
        # Keep oldest first
        entries.sort(key=lambda entry: entry.timestamp)
        return entries
