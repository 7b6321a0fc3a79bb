"""Error types raised by the configuration core."""
from pathlib import Path
from typing import Union


class RunConfigError(Exception):
    """Base class for all run configuration errors."""


class MalformedConfigFile(RunConfigError):
    """A configuration file could not be parsed after stripping comments."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Malformed configuration file {self.path}: {reason}")


class NoWorkspaceFolder(RunConfigError):
    """No workspace root could be resolved."""

    def __init__(self, message: str = "No workspace folder found"):
        super().__init__(message)


class ConfigurationNotFound(RunConfigError):
    """An identity does not resolve to an entry in the current files."""

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"Configuration with id {identity} not found")


class PersistenceFailure(RunConfigError):
    """The usage side file could not be written."""

    def __init__(self, path: Union[str, Path, None], reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not persist usage data to {path}: {reason}")


class ExecutionFailure(RunConfigError):
    """An external launcher or task runner failed to start a configuration."""
