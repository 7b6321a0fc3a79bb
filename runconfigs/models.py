"""Data models for launch and task configurations."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConfigKind(str, Enum):
    """Which source document a configuration lives in."""
    LAUNCH = "launch"
    TASK = "task"


class Severity(str, Enum):
    """Notification severity."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LaunchSpec(BaseModel):
    """One entry of launch.json's configurations array.

    Only name, type and request are known; every other key is kept as-is.
    """
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="Display name")
    type: str = Field(..., description="Debugger type, e.g. node or python")
    request: Optional[Literal["launch", "attach"]] = Field(default=None, description="launch or attach")

    def to_document(self) -> Dict[str, Any]:
        """Return the configuration as a plain dict for writing back to launch.json."""
        data = self.model_dump()
        if data.get("request") is None:
            data.pop("request", None)
        return data


class TaskSpec(BaseModel):
    """One entry of tasks.json's tasks array."""
    model_config = ConfigDict(extra="allow")

    label: str = Field(..., description="Task label")
    type: str = Field(..., description="Task type, e.g. shell or npm")

    def to_document(self) -> Dict[str, Any]:
        """Return the configuration as a plain dict for writing back to tasks.json."""
        return self.model_dump()


def default_launch_spec() -> LaunchSpec:
    return LaunchSpec(
        name="New Launch Configuration",
        type="node",
        request="launch",
        program="${workspaceFolder}/",
        console="integratedTerminal",
    )


def default_task_spec() -> TaskSpec:
    return TaskSpec(
        label="New Task",
        type="shell",
        command="echo",
        args=["Hello World"],
        group="build",
    )


class UsageEntry(BaseModel):
    """Usage statistics for one identity, as stored in the usage side file."""
    model_config = ConfigDict(populate_by_name=True)

    count: int = Field(default=0, ge=0)
    last_used: Optional[datetime] = Field(default=None, alias="lastUsed")


class ConfigurationItem(BaseModel):
    """Merged read model of a launch or task configuration.

    Rebuilt on every load; `identity` is positional (`launch-0`, `task-3`)
    and shifts when entries before it are added or removed.
    """
    identity: str
    display_name: str
    kind: ConfigKind
    spec: Dict[str, Any] = Field(default_factory=dict)
    icon_hint: str = "gear"
    usage_count: int = 0
    last_used_at: Optional[datetime] = None


class ShellTaskDescriptor(BaseModel):
    """What the task runner receives for a shell-style execution."""
    type: str
    label: str
    command: str = ""
    args: List[str] = Field(default_factory=list)


class ExecutionResult(BaseModel):
    """Outcome of a run request, as reported to the user."""
    status: Literal["success", "error"]
    message: str


class Notification(BaseModel):
    """User-visible message emitted by the dispatcher."""
    message: str
    severity: Severity = Severity.INFO
    timestamp: datetime
