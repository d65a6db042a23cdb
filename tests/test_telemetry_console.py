from __future__ import annotations

from io import StringIO
from types import SimpleNamespace

from opentelemetry.sdk.trace.export import SpanExportResult

from outingplanner.telemetry import _CompactConsoleSpanExporter, _format_span_line, mark_span_failed


def _fake_span(
    *,
    name: str = "stops.resolve",
    start_ns: int = 0,
    end_ns: int = 12_300_000,
    status_name: str = "UNSET",
    status_description: str | None = None,
    attributes: dict | None = None,
):
    return SimpleNamespace(
        name=name,
        start_time=start_ns,
        end_time=end_ns,
        status=SimpleNamespace(
            status_code=SimpleNamespace(name=status_name),
            description=status_description,
        ),
        attributes=attributes or {},
    )


def test_format_span_line_compact_includes_main_info() -> None:
    span = _fake_span(attributes={"stops.submitted": 40, "pins.count": 37, "ignored": "x"})
    line = _format_span_line(span, ("stops.submitted", "pins.count"))

    assert line.startswith("[trace] stops.resolve | 12.3ms | OK")
    assert "stops.submitted=40" in line
    assert "pins.count=37" in line
    assert "ignored" not in line


def test_format_span_line_error_status_and_description() -> None:
    span = _fake_span(
        status_name="ERROR",
        status_description="StopResolutionTimeout: Place search did not answer within 10 seconds.",
    )
    line = _format_span_line(span, ("pins.count",))

    assert "| ERR |" in line
    assert "error=StopResolutionTimeout" in line


def test_compact_exporter_ignores_closed_stream() -> None:
    stream = StringIO()
    exporter = _CompactConsoleSpanExporter(out=stream)
    stream.close()

    assert exporter.export([_fake_span()]) == SpanExportResult.SUCCESS


def test_mark_span_failed_records_error() -> None:
    recorded = {}

    class RecordingSpan:
        def record_exception(self, exc):  # type: ignore[no-untyped-def]
            recorded["exception"] = exc

        def set_status(self, status):  # type: ignore[no-untyped-def]
            recorded["status"] = status

    error = RuntimeError("quota exceeded")
    mark_span_failed(RecordingSpan(), error)
    mark_span_failed(None, error)

    assert recorded["exception"] is error
    assert recorded["status"].status_code.name == "ERROR"
    assert recorded["status"].description == "RuntimeError: quota exceeded"
