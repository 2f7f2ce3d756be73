from __future__ import annotations

from typing import Any


class ValidationFailure(ValueError):
    """An answer that does not fit the current step. Recoverable: re-prompt."""


class MalformedEnvelope(ValueError):
    """Inbound webhook payload with an unexpected shape."""


class UpstreamError(RuntimeError):
    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: Any = None,
        code: Any = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.code = code

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.code is not None:
            parts.append(f"code={self.code}")
        if self.body not in (None, "", {}):
            parts.append(f"body={self.body}")
        return " ".join(parts)


class UpstreamAuthError(UpstreamError):
    pass


class UpstreamWriteError(UpstreamError):
    pass


class UpstreamSendError(UpstreamError):
    pass


class FlowEngineError(UpstreamError):
    pass


class SessionConflictError(RuntimeError):
    """A concurrent writer updated the same sender's session first."""
