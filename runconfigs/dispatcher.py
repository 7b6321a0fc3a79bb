"""Execution of launch and task configurations through external collaborators."""
import asyncio
import json
import logging
import subprocess
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Protocol

import aiohttp
import psutil

from .errors import ExecutionFailure
from .models import (
    ConfigKind,
    ConfigurationItem,
    ExecutionResult,
    Notification,
    Severity,
    ShellTaskDescriptor,
)
from .usage import utc_now
from .utils import build_command_line, detect_os, get_shell_command, safe_file_name

logger = logging.getLogger(__name__)


class DebugLauncher(Protocol):
    async def launch(self, spec: Dict[str, Any], workspace_root: Optional[Path]) -> bool:
        ...


class TaskRunner(Protocol):
    async def execute_shell_task(self, descriptor: ShellTaskDescriptor) -> bool:
        ...


class Notifier(Protocol):
    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        ...


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class NotificationCenter:
    """Keeps recent user-visible messages for the presentation layer."""

    def __init__(self, max_items: int = 50):
        self._items: Deque[Notification] = deque(maxlen=max_items)

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        logger.log(_LOG_LEVELS[severity], message)
        self._items.append(Notification(message=message, severity=severity, timestamp=utc_now()))

    def recent(self) -> List[Notification]:
        return list(self._items)


class HttpDebugLauncher:
    """Starts debug sessions by posting the configuration to an IDE bridge."""

    def __init__(self, bridge_url: str, timeout_sec: int = 10):
        self.bridge_url = bridge_url.rstrip("/")
        self.timeout_sec = timeout_sec

    async def launch(self, spec: Dict[str, Any], workspace_root: Optional[Path]) -> bool:
        url = f"{self.bridge_url}/debug/start"
        payload = {
            "configuration": spec,
            "workspaceFolder": str(workspace_root) if workspace_root else None,
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_sec)
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise ExecutionFailure(f"IDE bridge returned HTTP {response.status}: {body[:200]}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExecutionFailure(f"IDE bridge unreachable at {url}: {e}") from e
        return True


class ShellTaskRunner:
    """Runs shell tasks as local processes with output captured to log files."""

    def __init__(self, workspace_root: Optional[Path], log_dir: Path, shell_type: str = "bash",
                 startup_grace_sec: float = 0.2):
        """Initialize task runner.

        Args:
            workspace_root: Working directory for tasks
            log_dir: Directory for per-task output logs
            shell_type: 'bash', 'powershell' or 'cmd'
            startup_grace_sec: How long to watch for an immediate failure
        """
        self.workspace_root = workspace_root
        self.log_dir = log_dir
        self.shell_type = shell_type
        self.startup_grace_sec = startup_grace_sec
        self.processes: Dict[str, List[subprocess.Popen]] = {}

    def get_log_path(self, label: str) -> Path:
        return self.log_dir / f"{safe_file_name(label)}.log"

    def read_log(self, label: str, lines: int = 2000) -> str:
        """Return the last `lines` lines of a task's output log."""
        log_path = self.get_log_path(label)
        try:
            with log_path.open("r", encoding="utf-8", errors="replace") as f:
                return "".join(deque(f, maxlen=max(lines, 0)))
        except FileNotFoundError:
            return f"No log file found at {log_path}"
        except OSError as e:
            return f"Error reading log: {e}"

    def _write_log(self, label: str, message: str) -> None:
        # runner lines share the file with the task's own output
        log_path = self.get_log_path(label)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            with log_path.open("a", encoding="utf-8") as f:
                f.write(f"[runconfigs {utc_now():%Y-%m-%dT%H:%M:%SZ}] {message}\n")
        except OSError as e:
            logger.warning("Error writing task log for %s: %s", label, e)

    def _running(self, label: str) -> List[subprocess.Popen]:
        """Forget finished processes of a task and return the live ones.

        Polling also reaps exited children.
        """
        alive = [proc for proc in self.processes.get(label, []) if proc.poll() is None]
        if alive:
            self.processes[label] = alive
        else:
            self.processes.pop(label, None)
        return alive

    async def execute_shell_task(self, descriptor: ShellTaskDescriptor) -> bool:
        """Start a shell task.

        Raises:
            ExecutionFailure: if the process cannot be started or exits
                with a non-zero code during the startup grace period
        """
        label = descriptor.label
        command_line = build_command_line(descriptor.command, descriptor.args, self.shell_type)
        if not command_line.strip():
            raise ExecutionFailure(f"Task {label!r} has no command")

        cwd = str(self.workspace_root) if self.workspace_root else None
        executable, args = get_shell_command(self.shell_type, command_line, cwd)
        full_cmd = [executable] + args

        self._write_log(label, f"=== Starting {label} ===")
        self._write_log(label, f"Executing: {' '.join(full_cmd)}")

        # bash on Windows runs through WSL and changes directory itself
        wsl_bash = self.shell_type == "bash" and detect_os() == "windows"
        process_cwd = None if wsl_bash else cwd

        try:
            with open(self.get_log_path(label), "a", encoding="utf-8") as log_file:
                process = subprocess.Popen(
                    full_cmd,
                    cwd=process_cwd,
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    shell=False
                )
        except OSError as e:
            self._write_log(label, f"ERROR: Failed to start command: {e}")
            raise ExecutionFailure(f"Failed to start command: {e}") from e

        self.processes[label] = self._running(label) + [process]
        self._write_log(label, f"Process started with PID: {process.pid}")

        await asyncio.sleep(self.startup_grace_sec)
        rc = process.poll()
        if rc is not None and rc != 0:
            self._write_log(label, f"ERROR: Process exited immediately with code {rc}")
            raise ExecutionFailure(f"Process exited immediately with code {rc}")

        return True

    def stop(self, label: str, timeout_sec: float = 5.0) -> bool:
        """Terminate the running processes of a task, children included.

        Processes still alive after `timeout_sec` are killed.

        Returns:
            True if the task had at least one running process
        """
        running = self._running(label)
        self.processes.pop(label, None)
        if not running:
            return False

        targets: List[psutil.Process] = []
        for proc in running:
            try:
                shell = psutil.Process(proc.pid)
                targets.extend(shell.children(recursive=True))
                targets.append(shell)
            except psutil.NoSuchProcess:
                continue

        self._signal_all(targets, "terminate")
        _, alive = psutil.wait_procs(targets, timeout=timeout_sec)
        self._signal_all(alive, "kill")

        for proc in running:
            proc.poll()
        self._write_log(label, f"Stopped {len(running)} process(es)")
        return True

    @staticmethod
    def _signal_all(targets: List[psutil.Process], action: str) -> None:
        for target in targets:
            try:
                getattr(target, action)()
            except psutil.NoSuchProcess:
                pass
            except psutil.Error as e:
                logger.warning("Could not %s process %s: %s", action, target.pid, e)


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def task_descriptor(spec: Mapping[str, Any]) -> ShellTaskDescriptor:
    """Normalize untyped task fields into a shell execution descriptor.

    `command` becomes a string (empty when missing) and `args` a list of
    strings (empty when absent or not a list).
    """
    command = spec.get("command")
    if not isinstance(command, str):
        command = _stringify(command) if command else ""

    args = spec.get("args")
    args = [_stringify(a) for a in args] if isinstance(args, list) else []

    return ShellTaskDescriptor(
        type=_stringify(spec.get("type", "shell")),
        label=_stringify(spec.get("label", "")),
        command=command,
        args=args,
    )


class ExecutionDispatcher:
    """Routes configurations to the debug launcher or the task runner.

    Failures are reported through the notifier and returned as results;
    nothing is raised to the caller.
    """

    def __init__(self, launcher: DebugLauncher, runner: TaskRunner, notifier: Notifier,
                 resolve_workspace_root: Callable[[], Optional[Path]]):
        self.launcher = launcher
        self.runner = runner
        self.notifier = notifier
        self.resolve_workspace_root = resolve_workspace_root

    def _success(self, message: str) -> ExecutionResult:
        self.notifier.notify(message, Severity.INFO)
        return ExecutionResult(status="success", message=message)

    def _failure(self, message: str) -> ExecutionResult:
        self.notifier.notify(message, Severity.ERROR)
        return ExecutionResult(status="error", message=message)

    async def run_launch(self, spec: Mapping[str, Any]) -> ExecutionResult:
        config = dict(spec)
        if not config.get("request"):
            config["request"] = "launch"

        try:
            started = await self.launcher.launch(config, self.resolve_workspace_root())
            if started is False:
                raise ExecutionFailure("debug session was not started")
        except Exception as e:
            logger.debug("Launch of %r failed", config.get("name"), exc_info=True)
            return self._failure(f"Failed to start debugging: {e}")

        return self._success(f"Started debugging: {config.get('name', '')}")

    async def run_task(self, spec: Mapping[str, Any]) -> ExecutionResult:
        descriptor = task_descriptor(spec)

        try:
            started = await self.runner.execute_shell_task(descriptor)
            if started is False:
                raise ExecutionFailure("task was not started")
        except Exception as e:
            logger.debug("Task %r failed", descriptor.label, exc_info=True)
            return self._failure(f"Failed to start task: {e}")

        return self._success(f"Started task: {descriptor.label}")

    async def dispatch(self, item: ConfigurationItem) -> ExecutionResult:
        if item.kind == ConfigKind.LAUNCH:
            return await self.run_launch(item.spec)
        return await self.run_task(item.spec)
