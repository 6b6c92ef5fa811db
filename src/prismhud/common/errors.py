"""Error taxonomy for the scene analysis pipeline.

Every error carries a ``status_message`` that the orchestrator shows to the
user when a cycle ends with that error. None of them is fatal to the process.
"""

from __future__ import annotations


class PrismError(Exception):
    """Base class for pipeline errors."""

    status_message = "PRISM // FAULT"

    def __init__(self, message: str = "", *, detail: str | None = None) -> None:
        super().__init__(message or self.status_message)
        self.detail = detail

    @property
    def kind(self) -> str:
        """Short error kind name used in pipeline state."""
        return type(self).__name__


class DeviceError(PrismError):
    """Camera or microphone unavailable, or permission denied."""

    status_message = "PRISM // CRITICAL_LINK_FAILURE"


class NotReadyError(PrismError):
    """A frame was requested before the device delivered one."""

    status_message = "PRISM // SIGNAL_LAG: Syncing optical sensors..."


class NetworkError(PrismError):
    """The inference service could not be reached."""

    status_message = "NEURAL_SYNC_FAULT: Uplink unreachable. Trigger to retry."


class ServiceError(PrismError):
    """The inference service returned an error."""

    status_message = "NEURAL_SYNC_FAULT: Retrying uplink..."

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.status_code = status_code


class SchemaError(ServiceError):
    """The inference response did not match the analysis schema."""

    status_message = "NEURAL_SYNC_FAULT: Corrupted telemetry. Retrying uplink..."


class AudioDecodeError(PrismError):
    """Synthesized audio payload is not valid 16-bit PCM."""

    status_message = "PRISM // AUDIO_BYPASS"


class BusyError(PrismError):
    """An exclusive session is already active."""

    status_message = "PRISM // CHANNEL_BUSY"
