"""Admin API: server control, status, logs and RCON.

Every route sits behind the RequestGateMiddleware, so ``request.state.identity``
is always set here.
"""
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from blockhaven.adapters.aws.logs import iso_timestamp
from blockhaven.api.admin.models import (
    CommandRequest,
    GameServerStatus,
    InstanceStatus,
    LogLine,
    LogsResponse,
    ServerActionResponse,
    StatusResponse,
)
from blockhaven.core.commands import validate_command
from blockhaven.core.executor import RemoteCommandExecutor
from blockhaven.dependencies import (
    get_audit_logger,
    get_command_executor,
    get_game_status_probe,
    get_instance_controller,
    get_log_source,
    get_settings,
)
from blockhaven.domain.audit import AuditAction, AuditLogger
from blockhaven.domain.auth import Identity
from blockhaven.domain.interfaces import GameStatusProbe, InstanceController, LogSource
from blockhaven.errors import AdminError, InstanceNotFound, LogSourceNotConfigured
from blockhaven.settings import Settings

router = APIRouter()
logger = logging.getLogger(__name__)

VALID_LOG_COUNTS = (100, 250, 500)
DEFAULT_LOG_COUNT = 100
MAX_AUDITED_OUTPUT = 200


def get_identity(request: Request) -> Optional[Identity]:
    return getattr(request.state, "identity", None)


def _error_message(e: Exception) -> str:
    return e.message if isinstance(e, AdminError) else (str(e) or "Unknown error")


# ============ Server Status ============

@router.get("/server/status")
async def server_status(
    controller: InstanceController = Depends(get_instance_controller),
    probe: GameStatusProbe = Depends(get_game_status_probe),
    settings: Settings = Depends(get_settings),
):
    """EC2 instance state combined with game server status."""
    try:
        instance = await controller.describe()
    except InstanceNotFound:
        return JSONResponse(
            status_code=404,
            content={"error": "Instance not found", "instanceId": settings.EC2_INSTANCE_ID},
        )
    except Exception as e:
        logger.error(f"Status check failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to get server status", "message": _error_message(e)},
        )

    launch_time = None
    uptime_seconds = None
    if instance.launch_time is not None:
        launch_epoch = instance.launch_time.timestamp()
        launch_time = iso_timestamp(int(launch_epoch * 1000))
        if instance.state == "running":
            uptime_seconds = max(0, int(time.time() - launch_epoch))

    minecraft = None
    if instance.state == "running" and instance.public_ip:
        status = await probe.probe(settings.MC_SERVER_IP or instance.public_ip)
        minecraft = GameServerStatus.model_validate(status.to_dict())

    body = StatusResponse(
        ec2=InstanceStatus(
            state=instance.state,
            public_ip=instance.public_ip,
            instance_id=instance.instance_id,
            launch_time=launch_time,
            uptime_seconds=uptime_seconds,
        ),
        minecraft=minecraft,
        timestamp=iso_timestamp(),
    )
    return JSONResponse(content=body.model_dump(by_alias=True))


# ============ Start / Stop ============

START_MESSAGES = {
    "running": "Server is already running",
    "pending": "Server is starting. This may take 30-60 seconds.",
}

STOP_MESSAGES = {
    "stopped": "Server is already stopped",
    "stopping": "Server is stopping. World data is being saved.",
}


async def _change_power_state(
    request: Request,
    action: AuditAction,
    controller_call,
    messages: dict,
    failure_error: str,
    audit: AuditLogger,
    instance_id: Optional[str],
):
    identity = get_identity(request)
    try:
        change = await controller_call()
    except Exception as e:
        await audit.log(action, False, identity, {"error": _error_message(e), "instanceId": instance_id}, request)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": failure_error, "message": _error_message(e)},
        )

    await audit.log(action, True, identity, {
        "previousState": change.previous_state,
        "currentState": change.current_state,
        "instanceId": change.instance_id,
    }, request)

    message = messages.get(change.current_state, f"Server state changed to {change.current_state}")
    body = ServerActionResponse(
        success=True,
        message=message,
        current_state=change.current_state,
        previous_state=change.previous_state,
    )
    return JSONResponse(content=body.model_dump(by_alias=True))


@router.post("/server/start")
async def server_start(
    request: Request,
    controller: InstanceController = Depends(get_instance_controller),
    audit: AuditLogger = Depends(get_audit_logger),
    settings: Settings = Depends(get_settings),
):
    """Start the instance. Returns immediately; poll status for progress."""
    return await _change_power_state(
        request, AuditAction.SERVER_START, controller.start, START_MESSAGES,
        "Failed to start server", audit, settings.EC2_INSTANCE_ID,
    )


@router.post("/server/stop")
async def server_stop(
    request: Request,
    controller: InstanceController = Depends(get_instance_controller),
    audit: AuditLogger = Depends(get_audit_logger),
    settings: Settings = Depends(get_settings),
):
    """Gracefully stop the instance so the world is saved first."""
    return await _change_power_state(
        request, AuditAction.SERVER_STOP, controller.stop, STOP_MESSAGES,
        "Failed to stop server", audit, settings.EC2_INSTANCE_ID,
    )


# ============ Logs ============

@router.get("/logs")
async def server_logs(
    count: Optional[str] = None,
    source: LogSource = Depends(get_log_source),
):
    try:
        line_count = int(count) if count is not None else DEFAULT_LOG_COUNT
    except ValueError:
        line_count = None

    if line_count not in VALID_LOG_COUNTS:
        return JSONResponse(
            status_code=400,
            content={"error": f"Invalid count. Must be one of: {', '.join(map(str, VALID_LOG_COUNTS))}"},
        )

    try:
        entries = await source.fetch(line_count)
    except LogSourceNotConfigured:
        body = LogsResponse(
            logs=[],
            count=0,
            message="CloudWatch logs not configured. See setup documentation.",
            timestamp=iso_timestamp(),
        )
        return JSONResponse(content=body.model_dump(by_alias=True, exclude_none=True))
    except Exception as e:
        logger.error(f"Log fetch failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"error": "Failed to fetch logs", "message": _error_message(e)},
        )

    body = LogsResponse(
        logs=[LogLine(timestamp=e.timestamp, message=e.message, level=e.level) for e in entries],
        count=len(entries),
        timestamp=iso_timestamp(),
    )
    return JSONResponse(content=body.model_dump(by_alias=True, exclude_none=True))


# ============ RCON ============

@router.post("/rcon")
async def rcon_command(
    request: Request,
    executor: RemoteCommandExecutor = Depends(get_command_executor),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Execute a whitelisted RCON command on the game server."""
    identity = get_identity(request)

    try:
        payload = CommandRequest.model_validate(await request.json())
    except (ValueError, ValidationError):
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})

    command, args = payload.command, payload.args
    if not command:
        return JSONResponse(status_code=400, content={"success": False, "error": "Command is required"})

    validation = validate_command(command, args)
    if not validation.valid:
        await audit.log(AuditAction.RCON_COMMAND, False, identity, {
            "command": command, "args": args, "error": validation.error,
        }, request)
        return JSONResponse(status_code=400, content={"success": False, "error": validation.error})

    try:
        output = await executor.execute(command, args)
    except Exception as e:
        message = _error_message(e) if isinstance(e, AdminError) else "Command execution failed"
        logger.error(f"RCON command '{command}' failed: {e}")
        await audit.log(AuditAction.RCON_COMMAND, False, identity, {
            "command": command, "args": args, "error": message,
        }, request)
        return JSONResponse(status_code=500, content={"success": False, "error": message})

    await audit.log(AuditAction.RCON_COMMAND, True, identity, {
        "command": command, "args": args, "output": output[:MAX_AUDITED_OUTPUT],
    }, request)
    return JSONResponse(content={"success": True, "output": output})
