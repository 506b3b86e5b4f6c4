"""Fatal error types for an audit run."""

from __future__ import annotations


class ConfigurationError(Exception):
    """Raised when the run configuration cannot be executed.

    Only configuration problems abort a run. Everything that goes wrong
    while talking to the target org is recorded in the results instead.
    """

    def __init__(self, message: str, path: list[str] | None = None) -> None:
        self.path = path or []
        self.message = message
        if self.path:
            super().__init__(f"{message} in \"{'.'.join(self.path)}\"")
        else:
            super().__init__(message)
