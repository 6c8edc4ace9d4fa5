"""Root of the Equilibrium error hierarchy.

Every error raised by the retrieval engine or the generation orchestrator
derives from :class:`EquilibriumError` and knows its error code, the site
that raised it and the failure underneath it, so the CLI and the logs can
render any of them the same way.
"""

import inspect
import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import PurePath
from types import FrameType
from typing import Any


@dataclass(frozen=True)
class RaiseSite:
    """Where an error was raised."""

    class_name: str
    method_name: str
    file_name: str
    line_number: int
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @classmethod
    def from_frame(cls, frame: FrameType | None) -> "RaiseSite":
        if frame is None:
            return cls("<unknown>", "<unknown>", "<unknown>", 0)
        owner = frame.f_locals.get("self")
        return cls(
            class_name=type(owner).__name__ if owner is not None else "<module>",
            method_name=frame.f_code.co_name,
            file_name=PurePath(frame.f_code.co_filename.replace("\\", "/")).name,
            line_number=frame.f_lineno,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "class": self.class_name,
            "method": self.method_name,
            "file": self.file_name,
            "line": self.line_number,
            "timestamp": self.timestamp,
        }


class EquilibriumError(Exception):
    """Base class for all Equilibrium errors.

    Subclasses only set ``error_code``. Wrap lower-level failures with
    ``cause`` so the original type and message survive into ``to_dict()``:

        try:
            backend.forward(text)
        except RuntimeError as e:
            raise EmbeddingInferenceError(
                "Embedding forward pass failed",
                cause=e,
                context={"model": backend.model_name},
            ) from e
    """

    error_code: str = "EQ_ERR_001"

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.extra_context = context or {}
        self.location = self._raise_site()

    @property
    def stack_trace(self) -> str | None:
        """Formatted traceback of ``cause``, when it was actually raised."""
        if self.cause is None or self.cause.__traceback__ is None:
            return None
        return "".join(traceback.format_exception(self.cause))

    def _raise_site(self) -> RaiseSite:
        frame = inspect.currentframe()
        try:
            caller = frame.f_back if frame is not None else None
            # leave every __init__ running on this instance, subclass overrides included
            while caller is not None and caller.f_locals.get("self") is self:
                caller = caller.f_back
            return RaiseSite.from_frame(caller)
        finally:
            del frame

    def to_dict(self, include_trace: bool = False) -> dict[str, Any]:
        """Structured form used by ``format_exception_json`` and the CLI.

        Args:
            include_trace: Add the cause's traceback, one entry per line.
        """
        result: dict[str, Any] = {
            "error": {
                "type": type(self).__name__,
                "code": self.error_code,
                "message": self.message,
            },
            "location": self.location.to_dict(),
        }
        if self.extra_context:
            result["context"] = self.extra_context
        if self.cause is not None:
            result["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}

        trace = self.stack_trace if include_trace else None
        if trace:
            result["stack_trace"] = [line for line in trace.splitlines() if line.strip()]
        return result
