"""Shared error codes and user-facing messages."""

from __future__ import annotations

GENERATION_FAILED = "GENERATION_FAILED"
GENERATION_TIMEOUT = "GENERATION_TIMEOUT"
AUTH_FAILED = "AUTH_FAILED"
NETWORK_ERROR = "NETWORK_ERROR"
STORAGE_ERROR = "STORAGE_ERROR"
TRACKING_FAILED = "TRACKING_FAILED"
PLAYBACK_ERROR = "PLAYBACK_ERROR"

ERROR_MESSAGES = {
    GENERATION_FAILED: "Story generation failed, serving queued content.",
    GENERATION_TIMEOUT: "Story generation timed out, serving queued content.",
    AUTH_FAILED: "API key is invalid.",
    NETWORK_ERROR: "Network failed, please retry.",
    STORAGE_ERROR: "Settings could not be read or written, using defaults.",
    TRACKING_FAILED: "Location tracking could not be started.",
    PLAYBACK_ERROR: "Audio playback failed.",
}


class StoryGenerationError(Exception):
    """Raised by story generators; carries an error code from this module."""

    def __init__(self, code: str, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable
