"""OpenTelemetry setup and span helpers for the plan pipeline."""

from __future__ import annotations

import os
import sys
from contextlib import nullcontext
from typing import Any, ContextManager, Sequence, TextIO

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.trace import Status, StatusCode

_INITIALIZED = False
_ENABLED = False


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def is_enabled() -> bool:
    return _as_bool(os.getenv("OUTINGPLANNER_TRACING_ENABLED"), default=False)


def configure_telemetry() -> bool:
    """Configure the global tracer provider once. Returns tracing enabled state."""
    global _INITIALIZED
    global _ENABLED

    if _INITIALIZED:
        return _ENABLED

    _ENABLED = is_enabled()
    if not _ENABLED:
        _INITIALIZED = True
        return False

    provider = TracerProvider(
        resource=Resource.create({"service.name": "outingplanner"}),
    )
    exporter_kind = os.getenv("OUTINGPLANNER_TRACING_EXPORTER", "console").strip().lower()
    if exporter_kind == "otlp":
        endpoint = os.getenv(
            "OUTINGPLANNER_OTLP_ENDPOINT",
            "http://localhost:4318/v1/traces",
        )
        timeout_ms = int(os.getenv("OUTINGPLANNER_OTLP_TIMEOUT_MS", "1000"))
        exporter = OTLPSpanExporter(endpoint=endpoint, timeout=timeout_ms / 1000)
    else:
        console_mode = os.getenv("OUTINGPLANNER_TRACING_CONSOLE_MODE", "compact").strip().lower()
        if console_mode == "raw":
            exporter = ConsoleSpanExporter(out=sys.stderr)
        else:
            exporter = _CompactConsoleSpanExporter(out=sys.stderr)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    _INITIALIZED = True
    return True


def start_span(name: str) -> ContextManager[Any]:
    """Start span when tracing is enabled; no-op (yields None) otherwise."""
    if not configure_telemetry():
        return nullcontext()
    tracer = trace.get_tracer("outingplanner")
    return tracer.start_as_current_span(name)


def mark_span_failed(span: Any, exc: BaseException) -> None:
    """Record a handled failure on `span` without re-raising."""
    if span is None:
        return
    span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR, f"{type(exc).__name__}: {exc}"))


class _CompactConsoleSpanExporter(SpanExporter):
    """Console exporter with concise one-line span summaries."""

    _INTERESTING_ATTRS = (
        "plans.count",
        "stops.total",
        "stops.submitted",
        "pins.count",
        "places.queries",
        "places.hits",
        "places.type_count",
        "outing.id",
    )

    def __init__(self, out: TextIO) -> None:
        self._out = out

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        for span in spans:
            try:
                self._out.write(_format_span_line(span, self._INTERESTING_ATTRS) + "\n")
            except ValueError:
                # Stream may already be closed at interpreter shutdown.
                return SpanExportResult.SUCCESS
        try:
            self._out.flush()
        except ValueError:
            return SpanExportResult.SUCCESS
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        return None


def _format_span_line(span: ReadableSpan, attrs_whitelist: tuple[str, ...]) -> str:
    duration_ms = max(0.0, (span.end_time - span.start_time) / 1_000_000)
    status_text = "ERR" if span.status.status_code.name == "ERROR" else "OK"
    attr_bits: list[str] = []
    for key in attrs_whitelist:
        if key in span.attributes:
            value = _safe_text(span.attributes[key])
            if value:
                attr_bits.append(f"{key}={value}")
    if span.status.description:
        attr_bits.append(f"error={_safe_text(span.status.description)}")
    attrs_joined = " | ".join(attr_bits[:5])
    if attrs_joined:
        return f"[trace] {span.name} | {duration_ms:.1f}ms | {status_text} | {attrs_joined}"
    return f"[trace] {span.name} | {duration_ms:.1f}ms | {status_text}"


def _safe_text(value: Any, max_len: int = 80) -> str:
    text = str(value).replace("\n", " ").replace("\r", " ")
    if len(text) > max_len:
        return text[: max_len - 1] + "…"
    return text
