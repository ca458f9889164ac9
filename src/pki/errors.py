"""Error taxonomy for the certificate pipeline.

Every error is fatal for the run. ``operation`` names the step that failed and
``hint`` carries a manual-inspection command the CLI echoes to stderr.
"""


class PkiError(Exception):
    """Base class for pipeline failures."""

    def __init__(self, message: str, operation: str | None = None, hint: str | None = None):
        super().__init__(message)
        self.operation = operation
        self.hint = hint


class ToolNotFound(PkiError):
    """Raised when a required external capability is unavailable."""

    pass


class GenerationFailure(PkiError):
    """Raised when a CA, certificate or keystore operation fails."""

    pass


class PublishFailure(PkiError):
    """Raised when a secret delete or create fails."""

    pass


class MissingInputFile(PkiError):
    """Raised when a secret entry has no backing artifact on disk."""

    pass
