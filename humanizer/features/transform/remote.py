"""
Remote transformation strategy.

Calls the external humanizer service over HTTP with a bearer token and a
wall-clock deadline on the whole call. Every failure mode is reported as
TransformationServiceError.
"""
import json
import time
from typing import Dict, Optional

import httpx

from humanizer.core.errors import TransformationServiceError
from humanizer.models.transformation import TransformationLevel

# Caller-facing level -> remote service mode
REMOTE_MODES: Dict[TransformationLevel, str] = {
    TransformationLevel.SLIGHT: "least",
    TransformationLevel.MODERATE: "medium",
    TransformationLevel.SUBSTANTIAL: "most",
}
DEFAULT_REMOTE_MODE = "medium"


class RemoteStrategy:
    """HTTP client for the remote humanizer API."""

    name = "remote"

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout_seconds: float = 10.0,
        response_field: str = "humanized",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            url: endpoint accepting POST {text, mode}
            api_key: bearer token for the service
            timeout_seconds: deadline for the whole call, checked as response
                bytes arrive; each connect/read/write step is bounded by it too
            response_field: JSON field carrying the transformed text
            transport: optional httpx transport (tests inject httpx.MockTransport)
        """
        if not api_key:
            raise ValueError("RemoteStrategy requires an API key")
        self.url = url
        self.response_field = response_field
        self.timeout_seconds = timeout_seconds
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
            transport=transport,
        )

    def _read_body(self, mode: str, text: str, deadline: float) -> bytes:
        chunks = []
        with self._client.stream("POST", self.url, json={"text": text, "mode": mode}) as response:
            response.raise_for_status()
            for chunk in response.iter_bytes():
                if time.monotonic() > deadline:
                    raise TransformationServiceError(
                        f"Remote transformation timed out after {self.timeout_seconds}s"
                    )
                chunks.append(chunk)
        return b"".join(chunks)

    def transform(self, text: str, level: TransformationLevel) -> str:
        mode = REMOTE_MODES.get(level, DEFAULT_REMOTE_MODE)
        deadline = time.monotonic() + self.timeout_seconds
        try:
            body = json.loads(self._read_body(mode, text, deadline))
        except httpx.TimeoutException as e:
            raise TransformationServiceError(f"Remote transformation timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise TransformationServiceError(
                f"Remote transformation returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise TransformationServiceError(f"Remote transformation failed: {e}") from e
        except ValueError as e:
            raise TransformationServiceError("Remote transformation returned invalid JSON") from e

        transformed = body.get(self.response_field) if isinstance(body, dict) else None
        if not isinstance(transformed, str) or not transformed.strip():
            raise TransformationServiceError(
                f"Remote transformation response has no '{self.response_field}' text"
            )
        return transformed

    def close(self) -> None:
        self._client.close()
