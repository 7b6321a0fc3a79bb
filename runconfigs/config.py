"""Settings file management."""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "runconfigs.yaml"

VSCODE_DIR = ".vscode"
LAUNCH_FILE_NAME = "launch.json"
TASKS_FILE_NAME = "tasks.json"
USAGE_FILE_NAME = "run-config-usage.json"
TASK_LOG_DIR_NAME = "run-config-logs"


class Settings(BaseModel):
    """Runtime settings for the configuration editor."""
    workspace: Optional[str] = Field(default=None, description="Workspace root; current directory when unset")
    host: str = Field(default="127.0.0.1", description="HTTP bind address")
    port: int = Field(default=8080, description="Preferred HTTP port")
    bridge_url: str = Field(default="http://127.0.0.1:3710", description="IDE bridge used to start debug sessions")
    bridge_timeout_sec: int = Field(default=10, description="Timeout for IDE bridge requests")
    task_shell: str = Field(default="bash", description="Shell type for tasks: bash, powershell, cmd")
    log_level: str = Field(default="INFO", description="Logging level name")


# Environment variable -> (settings field, is integer)
ENV_OVERRIDES = {
    "RUNCONFIGS_WORKSPACE": ("workspace", False),
    "RUNCONFIGS_HOST": ("host", False),
    "RUNCONFIGS_PORT": ("port", True),
    "RUNCONFIGS_BRIDGE_URL": ("bridge_url", False),
    "RUNCONFIGS_LOG_LEVEL": ("log_level", False),
    "RUNCONFIGS_SHELL": ("task_shell", False),
}


class SettingsManager:
    """Loads runconfigs.yaml and applies environment overrides."""

    def __init__(self, settings_path: str = SETTINGS_FILE_NAME):
        """Initialize settings manager.

        Args:
            settings_path: Path to the YAML settings file; relative paths
                are resolved against the current directory
        """
        self.settings_path = Path(settings_path)
        if not self.settings_path.is_absolute():
            self.settings_path = Path.cwd() / self.settings_path

    def _read_file(self) -> Dict[str, Any]:
        if not self.settings_path.exists():
            logger.debug("Settings file not found at %s, using defaults", self.settings_path)
            return {}

        try:
            with open(self.settings_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Error loading %s: %s", self.settings_path, e)
            return {}

        if not data:
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a mapping at top level", self.settings_path)
            return {}
        return data

    def load(self, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Load settings.

        Args:
            environ: Environment to read overrides from (defaults to os.environ)

        Returns:
            Settings with file values overridden by environment variables
        """
        if environ is None:
            environ = os.environ

        data = {k: v for k, v in self._read_file().items() if k in Settings.model_fields}

        for var, (field, is_int) in ENV_OVERRIDES.items():
            raw = environ.get(var, "").strip()
            if not raw:
                continue
            if is_int:
                try:
                    data[field] = int(raw)
                except ValueError:
                    logger.warning("Invalid %s: %r. Must be an integer.", var, raw)
                    continue
            else:
                data[field] = raw

        try:
            return Settings(**data)
        except ValidationError as e:
            logger.warning("Invalid settings in %s, using defaults: %s", self.settings_path, e)
            return Settings()


class WorkspacePaths:
    """Locations of the files the editor reads and writes under a workspace."""

    def __init__(self, root: Path):
        self.root = root
        self.vscode_dir = root / VSCODE_DIR
        self.launch_file = self.vscode_dir / LAUNCH_FILE_NAME
        self.tasks_file = self.vscode_dir / TASKS_FILE_NAME
        self.usage_file = self.vscode_dir / USAGE_FILE_NAME
        self.task_log_dir = self.vscode_dir / TASK_LOG_DIR_NAME
