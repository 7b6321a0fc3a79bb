"""Shared fixtures for run configuration tests."""
import json
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from runconfigs.dispatcher import ExecutionDispatcher
from runconfigs.repository import ConfigurationRepository
from runconfigs.usage import UsageStore

FIXED_NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


def write_launch(root: Path, configurations, version="0.2.0"):
    path = root / ".vscode" / "launch.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"version": version, "configurations": configurations}), encoding="utf-8")
    return path


def write_tasks(root: Path, tasks, version="2.0.0"):
    path = root / ".vscode" / "tasks.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"version": version, "tasks": tasks}), encoding="utf-8")
    return path


def read_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def workspace(tmp_path):
    """Empty workspace directory"""
    return tmp_path


@pytest.fixture
def launcher():
    launcher = Mock()
    launcher.launch = AsyncMock(return_value=True)
    return launcher


@pytest.fixture
def runner():
    runner = Mock()
    runner.execute_shell_task = AsyncMock(return_value=True)
    return runner


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def usage(workspace):
    store = UsageStore(workspace / ".vscode" / "run-config-usage.json", clock=lambda: FIXED_NOW)
    store.load()
    return store


@pytest.fixture
def dispatcher(launcher, runner, notifier, workspace):
    return ExecutionDispatcher(launcher, runner, notifier, lambda: workspace)


@pytest.fixture
def repository(workspace, usage, dispatcher):
    """Repository over the temporary workspace"""
    repo = ConfigurationRepository(lambda: workspace, usage, dispatcher)
    repo.reload()
    return repo
