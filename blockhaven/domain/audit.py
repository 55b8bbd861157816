import logging
import json
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional

from starlette.requests import Request

from blockhaven.domain.auth import Identity
from blockhaven.domain.sink import AuditSink, StdOutSink
from blockhaven.utils.id import uuid7

logger = logging.getLogger(__name__)

MAX_DETAIL_STRING = 200


class AuditAction(str, Enum):
    LOGIN = "login"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"
    SERVER_START = "server_start"
    SERVER_STOP = "server_stop"
    RCON_COMMAND = "rcon_command"


def client_context(request: Request) -> Dict[str, Optional[str]]:
    """Client ip and user agent, preferring proxy-supplied addresses."""
    headers = request.headers
    ip = headers.get("CF-Connecting-IP")
    if not ip and headers.get("X-Forwarded-For"):
        ip = headers["X-Forwarded-For"].split(",")[0].strip() or None
    if not ip and request.client:
        ip = request.client.host
    return {"ip": ip, "user_agent": headers.get("User-Agent")}


class AuditLogger:
    """Write-only audit trail for sensitive actions.

    Sink failures are logged and swallowed so that auditing never fails the
    request that triggered it.
    """

    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink: AuditSink = sink or StdOutSink()

    def build_record(
        self,
        action: AuditAction,
        success: bool,
        identity: Optional[Identity] = None,
        details: Optional[Dict[str, Any]] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        unix_ms = int(time.time() * 1000)
        # ts format: RFC3339 UTC with millisecond precision
        ts = datetime.fromtimestamp(unix_ms / 1000, tz=timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'

        record: Dict[str, Any] = {
            "id": uuid7(unix_ms),
            "timestamp": ts,
            "userId": identity.user_id if identity else "unknown",
            "username": identity.username if identity else "unknown",
            "action": AuditAction(action).value,
            "success": success,
        }
        if details:
            record["details"] = self._sanitize(details)
        if ip:
            record["ip"] = ip
        if user_agent:
            record["userAgent"] = user_agent
        if request_id:
            record["requestId"] = request_id
        return record

    def _sanitize(self, details: Dict[str, Any]) -> Dict[str, Any]:
        safe: Dict[str, Any] = {}
        for k, v in details.items():
            if v is None:
                continue
            if isinstance(v, str) and len(v) > MAX_DETAIL_STRING:
                v = v[:MAX_DETAIL_STRING]
            safe[k] = v
        return safe

    async def log(
        self,
        action: AuditAction,
        success: bool,
        identity: Optional[Identity] = None,
        details: Optional[Dict[str, Any]] = None,
        request: Optional[Request] = None,
    ) -> Dict[str, Any]:
        ctx = client_context(request) if request is not None else {"ip": None, "user_agent": None}
        request_id = getattr(request.state, "request_id", None) if request is not None else None
        record = self.build_record(
            action, success, identity, details,
            ip=ctx["ip"], user_agent=ctx["user_agent"], request_id=request_id,
        )

        line = f"[AUDIT] {record['action']} by {record['username']} at {record['timestamp']}"
        if record.get("details"):
            line += f" - {json.dumps(record['details'], sort_keys=True)}"
        if success:
            logger.info(line)
        else:
            logger.warning(line + " (FAILED)")

        try:
            await self.sink.emit(record)
        except Exception as e:
            logger.error(f"AUDIT LOGGING FAILURE: {e}")
        return record
