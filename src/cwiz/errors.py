"""Exception hierarchy for the contract wizard."""

from __future__ import annotations


class WizardError(Exception):
    """Base class for all wizard errors."""


class ApiError(WizardError):
    """A call to the backend REST API failed."""

    def __init__(self, message: str, *, method: str = "", path: str = "",
                 status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} ({self.method} {self.path} -> {self.status_code})"
        if self.path:
            return f"{base} ({self.method} {self.path})"
        return base


class ProjectNotFoundError(ApiError):
    """The requested project does not exist on the backend."""


class UnknownFieldError(WizardError, KeyError):
    """An update referenced a field the draft does not have."""

    def __init__(self, names: list[str]) -> None:
        super().__init__(f"Unknown draft field(s): {', '.join(sorted(names))}")
        self.names = names

    def __str__(self) -> str:
        return self.args[0]


class ConfirmationRequiredError(WizardError):
    """Contracts cannot be generated until the review checkbox is confirmed."""


class GenerationError(WizardError):
    """A stage of the contract generation pipeline failed."""

    def __init__(self, stage: int, label: str, cause: BaseException) -> None:
        super().__init__(f"{label} failed: {cause}")
        self.stage = stage
        self.label = label
        self.cause = cause
