import pytest

from humanizer.core import tracing
from humanizer.features.pipeline.service import run_transformation
from humanizer.features.users.service import get_or_create_user


@pytest.fixture
def memory_tracing():
    tracing.setup_tracing(enabled=True, exporter_name="memory")
    tracing.reset_exported_spans()
    yield
    tracing.setup_tracing(enabled=False)


def test_pipeline_emits_span(memory_tracing):
    get_or_create_user("traced")
    run_transformation("traced", "Hello world.", "slight")

    spans = tracing.get_exported_spans()
    names = [s.name for s in spans]
    assert "pipeline.transform" in names
    span = next(s for s in spans if s.name == "pipeline.transform")
    assert span.attributes["level"] == "slight"
    assert span.attributes["credits"] == 1


def test_disabled_tracing_yields_no_span():
    tracing.setup_tracing(enabled=False)
    with tracing.start_span("noop") as span:
        assert span is None
