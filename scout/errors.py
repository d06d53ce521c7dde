"""Error taxonomy shared by the session layer and both pipelines."""

from __future__ import annotations


class ScoutError(Exception):
    """Base class for every error raised on purpose by this project."""


class RunAbortedError(ScoutError):
    """Terminal for the active run; never caught inside the per-item loop."""


class SessionInitError(RunAbortedError):
    BINARY_NOT_FOUND = "binary_not_found"
    LAUNCH_REJECTED = "launch_rejected"

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        if reason == self.BINARY_NOT_FOUND:
            message = "browser binary not found"
        else:
            message = "browser launch rejected"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SessionLostError(RunAbortedError):
    pass


class AuthenticationRequiredError(RunAbortedError):
    def __init__(self, message: str = "authentication required") -> None:
        super().__init__(message)


class CaptchaTimeoutError(RunAbortedError):
    def __init__(self, message: str = "captcha was not resolved in time") -> None:
        super().__init__(message)


class BlockDetectedError(RunAbortedError):
    def __init__(self, message: str = "access temporarily blocked by the marketplace") -> None:
        super().__init__(message)


class QuotaExceededError(RunAbortedError):
    def __init__(self, message: str = "daily quota exceeded") -> None:
        super().__init__(message)


class EmptyWorkError(RunAbortedError):
    pass


class ItemError(ScoutError):
    """Scoped to a single work item or keyword; the run continues."""


class ExtractionError(ItemError):
    pass


class RelayError(ItemError):
    pass


class InputTargetError(ScoutError):
    pass


class SearchError(ScoutError):
    pass
