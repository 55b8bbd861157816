from typing import Protocol, Any, Dict
import json
import logging

from blockhaven.adapters.redis.client import audit_key

logger = logging.getLogger("blockhaven.audit.sink")


class AuditSink(Protocol):
    async def emit(self, event: Dict[str, Any]) -> None:
        """Emit an audit event to the sink."""
        ...


class StdOutSink:
    def __init__(self):
        self._logger = logging.getLogger("blockhaven.audit")

    async def emit(self, event: Dict[str, Any]) -> None:
        self._logger.info(json.dumps(event, sort_keys=True))


class RedisSink:
    """Append-only audit storage with a bounded lifetime per record."""

    def __init__(self, redis_client, ttl_seconds: int):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    async def emit(self, event: Dict[str, Any]) -> None:
        key = audit_key(event["timestamp"], event["id"])
        await self.redis.set(key, json.dumps(event, sort_keys=True), ex=self.ttl_seconds)


class CompositeSink:
    def __init__(self, sinks: list[AuditSink]):
        self.sinks = sinks

    async def emit(self, event: Dict[str, Any]) -> None:
        for sink in self.sinks:
            try:
                await sink.emit(event)
            except Exception as e:
                logger.error(f"Audit sink {type(sink).__name__} failed: {e}")
