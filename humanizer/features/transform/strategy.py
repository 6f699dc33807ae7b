"""
Transformation strategy protocol.

A strategy turns input text into transformed text at a given intensity.
New providers plug in by implementing this protocol; the pipeline never
branches on which concrete strategy it holds.
"""
from typing import Protocol

from humanizer.models.transformation import TransformationLevel


class TransformationStrategy(Protocol):
    """
    Implementations must:
    - accept any TransformationLevel
    - raise TransformationServiceError for operational failures (network,
      timeout, malformed response) so the caller can degrade to the next
      strategy
    """

    name: str

    def transform(self, text: str, level: TransformationLevel) -> str:
        ...
