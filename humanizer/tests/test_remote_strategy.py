import json
import time
from types import SimpleNamespace

import httpx
import pytest

from humanizer.core.errors import TransformationServiceError, TransformationTotalFailureError
from humanizer.core.metrics import transform_fallback_total
from humanizer.features.transform.engine import (
    TransformationEngine,
    build_strategies,
    close_engine,
    get_engine,
    set_engine,
)
from humanizer.features.transform.fallback import FallbackStrategy
from humanizer.features.transform.remote import RemoteStrategy
from humanizer.models.transformation import TransformationLevel

URL = "https://humanizer.test/v2/humanize"


def _remote(handler, **kwargs) -> RemoteStrategy:
    return RemoteStrategy(URL, "test-key", transport=httpx.MockTransport(handler), **kwargs)


def test_sends_text_mode_and_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"humanized": "rewritten"})

    out = _remote(handler).transform("original", TransformationLevel.SLIGHT)

    assert out == "rewritten"
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"] == {"text": "original", "mode": "least"}


@pytest.mark.parametrize(
    "level, mode",
    [
        (TransformationLevel.SLIGHT, "least"),
        (TransformationLevel.MODERATE, "medium"),
        (TransformationLevel.SUBSTANTIAL, "most"),
    ],
)
def test_level_to_mode_mapping(level, mode):
    modes = []

    def handler(request):
        modes.append(json.loads(request.content)["mode"])
        return httpx.Response(200, json={"humanized": "x"})

    _remote(handler).transform("t", level)
    assert modes == [mode]


def test_configurable_response_field():
    def handler(request):
        return httpx.Response(200, json={"output": "from output"})

    assert _remote(handler, response_field="output").transform("t", TransformationLevel.MODERATE) == "from output"


def test_timeout_is_a_service_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransformationServiceError):
        _remote(handler).transform("t", TransformationLevel.MODERATE)


def test_trickling_response_is_cut_off_at_the_deadline():
    body = json.dumps({"humanized": "rewritten slowly, one byte at a time"}).encode()

    def trickle():
        for i in range(len(body)):
            time.sleep(0.05)
            yield body[i : i + 1]

    def handler(request):
        return httpx.Response(200, content=trickle())

    strategy = _remote(handler, timeout_seconds=0.3)
    started = time.monotonic()
    with pytest.raises(TransformationServiceError) as exc:
        strategy.transform("t", TransformationLevel.MODERATE)

    assert time.monotonic() - started < 1.0
    assert "timed out" in exc.value.message

    engine = TransformationEngine([_remote(handler, timeout_seconds=0.3), FallbackStrategy()])
    started = time.monotonic()
    result = engine.transform("We utilize it.", TransformationLevel.SLIGHT)

    assert time.monotonic() - started < 1.0
    assert result.strategy == "fallback"
    assert transform_fallback_total.value({"strategy": "remote"}) == 1


def test_http_error_is_a_service_error():
    def handler(request):
        return httpx.Response(503, json={"error": "overloaded"})

    with pytest.raises(TransformationServiceError) as exc:
        _remote(handler).transform("t", TransformationLevel.MODERATE)
    assert "503" in exc.value.message


@pytest.mark.parametrize("payload", [{}, {"humanized": ""}, {"humanized": None}, ["humanized"]])
def test_missing_field_is_a_service_error(payload):
    def handler(request):
        return httpx.Response(200, json=payload)

    with pytest.raises(TransformationServiceError):
        _remote(handler).transform("t", TransformationLevel.MODERATE)


def test_invalid_json_is_a_service_error():
    def handler(request):
        return httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(TransformationServiceError):
        _remote(handler).transform("t", TransformationLevel.MODERATE)


def test_requires_api_key():
    with pytest.raises(ValueError):
        RemoteStrategy(URL, "")


def test_engine_degrades_to_fallback_on_remote_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    engine = TransformationEngine([_remote(handler), FallbackStrategy()])
    result = engine.transform("We utilize it.", TransformationLevel.SLIGHT)

    assert result.strategy == "fallback"
    assert result.text == "We use it."
    assert transform_fallback_total.value({"strategy": "remote"}) == 1


def test_engine_prefers_first_healthy_strategy():
    def handler(request):
        return httpx.Response(200, json={"humanized": "remote text"})

    result = TransformationEngine([_remote(handler), FallbackStrategy()]).transform(
        "t", TransformationLevel.MODERATE
    )
    assert result.strategy == "remote"
    assert result.text == "remote text"


def test_engine_total_failure():
    class Broken:
        name = "broken"

        def transform(self, text, level):
            raise TransformationServiceError("down")

    with pytest.raises(TransformationTotalFailureError) as exc:
        TransformationEngine([Broken(), Broken()]).transform("t", TransformationLevel.MODERATE)
    assert exc.value.status_code == 500
    assert exc.value.details["failures"] == ["broken: down", "broken: down"]


def _cfg(**overrides):
    values = dict(
        TRANSFORM_STRATEGY="remote",
        REMOTE_TRANSFORM_URL=URL,
        REMOTE_TRANSFORM_API_KEY=None,
        REMOTE_TRANSFORM_TIMEOUT_SECONDS=5.0,
        REMOTE_TRANSFORM_RESPONSE_FIELD="humanized",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_strategy_chain_from_config():
    assert [s.name for s in build_strategies(_cfg(REMOTE_TRANSFORM_API_KEY="k"))] == ["remote", "fallback"]
    assert [s.name for s in build_strategies(_cfg(TRANSFORM_STRATEGY="fallback", REMOTE_TRANSFORM_API_KEY="k"))] == [
        "fallback"
    ]


def test_remote_without_key_uses_fallback_only():
    assert [s.name for s in build_strategies(_cfg())] == ["fallback"]


def test_close_releases_the_http_client():
    remote = _remote(lambda request: httpx.Response(200, json={"humanized": "x"}))
    set_engine(TransformationEngine([remote, FallbackStrategy()]))

    close_engine()

    assert remote._client.is_closed
    assert get_engine().strategy_names == ["fallback"]
