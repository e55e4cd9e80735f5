"""Progress record contracts shared by the waiter, store, and stream.

Architectural role:
    Defines the `{status, progress, message}` value object written by
    `imagerelay.image.waiter` / `imagerelay.image.service` and read by the progress stream.

Status vocabulary:
    `starting -> generating/processing -> complete | error`. External
    `canceled` predictions fold into `error` before they reach this layer.

Determinism:
    Pure data; no I/O and no clock access.
"""

from dataclasses import dataclass


STATUS_STARTING = "starting"
STATUS_GENERATING = "generating"
STATUS_PROCESSING = "processing"
STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETE, STATUS_ERROR})


@dataclass(frozen=True)
class ProgressRecord:
    """Current state of one generation as shown to progress viewers.

    Attributes:
        status: One of the `STATUS_*` constants.
        progress: Display percentage in [0, 100]. Not guaranteed monotonic.
        message: Human-readable description of the current state.
    """

    status: str
    progress: float
    message: str

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        """Return the wire shape pushed to stream clients."""
        return {
            "status": self.status,
            "progress": self.progress,
            "message": self.message,
        }
