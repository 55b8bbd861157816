import logging
import re
from typing import Optional

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.trace import ReadableSpan, Span, SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from blockhaven.settings import Settings

logger = logging.getLogger(__name__)


class RedactingSpanProcessor(SpanProcessor):
    """
    SpanProcessor that redacts sensitive attributes from spans before they are
    handed to the wrapped processor for export.
    """
    def __init__(self, processor: SpanProcessor):
        self._processor = processor
        self._sensitive_keys = {"authorization", "cookie", "set-cookie"}
        self._sensitive_patterns = [
            re.compile(r"http\.request\.header\..*", re.IGNORECASE),
            re.compile(r"http\.response\.header\..*", re.IGNORECASE),
            re.compile(r".*(session|token|secret|credential).*", re.IGNORECASE),
        ]

    def on_start(self, span: Span, parent_context: Optional[Context] = None) -> None:
        self._processor.on_start(span, parent_context)

    def on_end(self, span: ReadableSpan) -> None:
        if span.attributes and hasattr(span, "_attributes"):
            # Ended spans are read-only through the public API
            span._attributes = {
                key: "[REDACTED]" if self._should_redact(key) else value
                for key, value in span.attributes.items()
            }
        self._processor.on_end(span)

    def shutdown(self) -> None:
        self._processor.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._processor.force_flush(timeout_millis)

    def _should_redact(self, key: str) -> bool:
        key_lower = key.lower()
        if key_lower in self._sensitive_keys:
            return True
        return any(pattern.match(key_lower) for pattern in self._sensitive_patterns)


def setup_opentelemetry(app: FastAPI, settings: Settings) -> None:
    if not settings.TRACING_ENABLED:
        return

    provider = TracerProvider()
    if settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True))
    else:
        processor = BatchSpanProcessor(ConsoleSpanExporter())

    provider.add_span_processor(RedactingSpanProcessor(processor))
    trace.set_tracer_provider(provider)

    # Exclude health checks from tracing to reduce noise
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls="health/*")
    logger.info("Tracing enabled")
