"""Domain-specific exceptions for the call bridge.

These exceptions are safe to import from API layers without pulling in any engine client.
"""

from __future__ import annotations


class BridgeError(Exception):
    default_detail: str = "Voice bridge error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class RecognizerError(BridgeError):
    default_detail = "Speech recognition unavailable."


class GenerationError(BridgeError):
    default_detail = "Response generation failed."


class SynthesisError(BridgeError):
    default_detail = "Speech synthesis failed."


class TransportClosedError(BridgeError):
    default_detail = "Transport connection is closed."
