"""Dependency Injection Module.

Each collaborator is built once from the immutable Settings and cached at
module level. Tests replace the cached instances or use
``app.dependency_overrides``.
"""
import logging
from typing import Optional

from blockhaven.settings import Settings
from blockhaven.core.rate_limiter import RateLimiter, CounterStore, MemoryCounterStore, RedisCounterStore
from blockhaven.core.executor import RemoteCommandExecutor
from blockhaven.domain.audit import AuditLogger
from blockhaven.domain.auth import SessionResolver
from blockhaven.domain.interfaces import InstanceController, LogSource, GameStatusProbe
from blockhaven.domain.sink import AuditSink, StdOutSink, RedisSink, CompositeSink

logger = logging.getLogger(__name__)

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


async def get_redis_client():
    """Shared Redis client, or None when no counter store is configured."""
    settings = get_settings()
    if not settings.REDIS_URL:
        return None
    from blockhaven.adapters.redis.client import get_redis
    return await get_redis(settings.REDIS_URL)


# --- Rate Limiting ---

_rate_limiter_instance: Optional[RateLimiter] = None


async def get_counter_store() -> Optional[CounterStore]:
    settings = get_settings()
    backend = (settings.RATE_LIMIT_BACKEND or ("redis" if settings.REDIS_URL else "")).lower()
    if backend == "memory":
        return MemoryCounterStore()
    if backend == "redis":
        redis_client = await get_redis_client()
        if redis_client is None:
            logger.error("RATE_LIMIT_BACKEND=redis but REDIS_URL is not set")
            return None
        return RedisCounterStore(redis_client)
    return None


async def get_rate_limiter() -> Optional[RateLimiter]:
    """The shared limiter, or None when no counter store is configured."""
    global _rate_limiter_instance
    if _rate_limiter_instance is None:
        store = await get_counter_store()
        if store is None:
            return None
        settings = get_settings()
        _rate_limiter_instance = RateLimiter(
            store,
            policies=settings.RATE_LIMIT_POLICIES,
            default_policy=settings.default_rate_policy,
            ttl_buffer_seconds=settings.RATE_LIMIT_TTL_BUFFER_SECONDS,
        )
    return _rate_limiter_instance


# --- Identity ---

_session_resolver_instance: Optional[SessionResolver] = None


def get_session_resolver() -> SessionResolver:
    global _session_resolver_instance
    if _session_resolver_instance is None:
        _session_resolver_instance = SessionResolver.from_settings(get_settings())
    return _session_resolver_instance


# --- Audit ---

_audit_logger_instance: Optional[AuditLogger] = None


async def get_audit_logger() -> AuditLogger:
    global _audit_logger_instance
    if _audit_logger_instance is None:
        settings = get_settings()
        sink: AuditSink = StdOutSink()
        redis_client = await get_redis_client()
        if redis_client is not None:
            sink = CompositeSink([sink, RedisSink(redis_client, settings.AUDIT_TTL_SECONDS)])
        _audit_logger_instance = AuditLogger(sink)
    return _audit_logger_instance


# --- AWS ---

_instance_controller_instance: Optional[InstanceController] = None
_command_executor_instance: Optional[RemoteCommandExecutor] = None
_log_source_instance: Optional[LogSource] = None
_game_status_probe_instance: Optional[GameStatusProbe] = None


def get_instance_controller() -> InstanceController:
    global _instance_controller_instance
    if _instance_controller_instance is None:
        from blockhaven.adapters.aws.session import make_client
        from blockhaven.adapters.aws.ec2 import Ec2InstanceController
        settings = get_settings()
        _instance_controller_instance = Ec2InstanceController(make_client("ec2", settings), settings.EC2_INSTANCE_ID)
    return _instance_controller_instance


def get_command_executor() -> RemoteCommandExecutor:
    global _command_executor_instance
    if _command_executor_instance is None:
        from blockhaven.adapters.aws.session import make_client
        from blockhaven.adapters.aws.ssm import SsmCommandService
        settings = get_settings()
        _command_executor_instance = RemoteCommandExecutor(
            SsmCommandService(make_client("ssm", settings)),
            instance_id=settings.EC2_INSTANCE_ID,
            container_name=settings.MC_CONTAINER_NAME,
            initial_delay=settings.RCON_INITIAL_DELAY_SECONDS,
            poll_interval=settings.RCON_POLL_INTERVAL_SECONDS,
            max_attempts=settings.RCON_MAX_ATTEMPTS,
            submit_timeout=settings.RCON_SUBMIT_TIMEOUT_SECONDS,
        )
    return _command_executor_instance


def get_log_source() -> LogSource:
    global _log_source_instance
    if _log_source_instance is None:
        from blockhaven.adapters.aws.session import make_client
        from blockhaven.adapters.aws.logs import CloudWatchLogSource
        settings = get_settings()
        _log_source_instance = CloudWatchLogSource(make_client("logs", settings), settings.CLOUDWATCH_LOG_GROUP)
    return _log_source_instance


def get_game_status_probe() -> GameStatusProbe:
    global _game_status_probe_instance
    if _game_status_probe_instance is None:
        from blockhaven.adapters.minecraft.status import McStatusProbe
        settings = get_settings()
        _game_status_probe_instance = McStatusProbe(settings.MCSTATUS_API_URL, settings.MCSTATUS_TIMEOUT_SECONDS)
    return _game_status_probe_instance
