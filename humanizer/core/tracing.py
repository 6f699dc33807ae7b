"""OpenTelemetry spans around requests and pipeline runs; off unless OTEL_ENABLED."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from humanizer.core.config import settings

SERVICE_NAME = "humanizer"


class _TracingState:
    enabled: bool = False
    tracer: Optional[trace.Tracer] = None
    exporter: Optional[SpanExporter] = None


_state = _TracingState()


def _build_exporter(name: str) -> SpanExporter:
    if name == "memory":
        return InMemorySpanExporter()
    return ConsoleSpanExporter()


def setup_tracing(enabled: Optional[bool] = None, exporter_name: Optional[str] = None) -> None:
    """(Re)configure tracing. Calling with enabled=False turns spans into no-ops."""
    _state.enabled = settings.OTEL_ENABLED if enabled is None else bool(enabled)
    if not _state.enabled:
        return

    exporter = _build_exporter(exporter_name or os.getenv("OTEL_EXPORTER", settings.OTEL_EXPORTER))
    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    # Private provider: the global one can only be installed once per process
    _state.exporter = exporter
    _state.tracer = provider.get_tracer(SERVICE_NAME)


@contextmanager
def start_span(name: str, attributes: Optional[Dict[str, object]] = None):
    """Yield an active span, or None when tracing is off. None-valued attributes are skipped."""
    if not _state.enabled or _state.tracer is None:
        yield None
        return
    clean = {k: v for k, v in (attributes or {}).items() if v is not None}
    with _state.tracer.start_as_current_span(name, attributes=clean) as span:
        yield span


def get_exported_spans():
    if isinstance(_state.exporter, InMemorySpanExporter):
        return _state.exporter.get_finished_spans()
    return ()


def reset_exported_spans() -> None:
    if isinstance(_state.exporter, InMemorySpanExporter):
        _state.exporter.clear()
