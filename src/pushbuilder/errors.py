"""Domain errors for pushbuilder."""


class BuilderError(RuntimeError):
    """Raised when the push cannot be turned into a release."""

    stage = "pipeline"


class UsageError(BuilderError):
    stage = "usage"


class SettingsError(BuilderError):
    stage = "settings"


class StagingError(BuilderError):
    stage = "stage"


class ConfigFetchError(BuilderError):
    stage = "config"


class BuildError(BuilderError):
    stage = "build"


class RegistryError(BuilderError):
    stage = "push"


class ReleaseError(BuilderError):
    """Raised when the controller rejects the release hook."""

    stage = "release"

    def __init__(self, message: str, body: str = ""):
        super().__init__(message)
        self.body = body


class ProcessTypeError(BuilderError):
    """Raised for an unreadable process-type source; callers degrade to no process types."""

    stage = "procfile"
