"""Utility functions for OS detection, shell commands and path handling."""
import os
import platform
import re
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Tuple


def detect_os() -> str:
    """Detect operating system.

    Returns:
        'windows', 'wsl', 'linux' or the lowercased platform name
    """
    system = platform.system().lower()

    if system == 'linux':
        try:
            with open('/proc/version', 'r') as f:
                if 'microsoft' in f.read().lower():
                    return 'wsl'
        except OSError:
            pass
    return system


def to_wsl_path(path: str) -> str:
    r"""Convert a Windows path to the path bash inside WSL sees.

    Handles drive paths (C:\work -> /mnt/c/work) and WSL network paths
    (\\wsl.localhost\Ubuntu\home\me -> /home/me). Anything else is returned
    unchanged.
    """
    network = re.match(r'^\\\\(?:wsl\.localhost|wsl\$)\\[^\\]+\\(.*)$', path, re.IGNORECASE)
    if network:
        return '/' + network.group(1).replace('\\', '/').lstrip('/')

    drive = re.match(r'^([A-Za-z]):[\\/]?(.*)$', path)
    if drive:
        rest = drive.group(2).replace('\\', '/')
        return f"/mnt/{drive.group(1).lower()}/{rest}".rstrip('/')

    return path


def build_command_line(command: str, args: Sequence[str], shell_type: str = 'bash') -> str:
    """Join a task command and its arguments into one shell command line.

    The command is passed through untouched so it may itself contain shell
    syntax; each argument is quoted for the target shell.
    """
    if not args:
        return command
    if shell_type in ('cmd', 'powershell'):
        quoted = subprocess.list2cmdline(list(args))
    else:
        quoted = ' '.join(shlex.quote(a) for a in args)
    return f"{command} {quoted}" if command else quoted


def get_shell_command(shell_type: str, command: str, cwd: Optional[str] = None) -> Tuple[str, List[str]]:
    """Get shell executable and arguments to run a command line.

    Args:
        shell_type: 'bash', 'powershell' or 'cmd'
        command: Command line to execute
        cwd: Working directory; only used when bash runs through WSL

    Returns:
        Tuple of (executable, args_list)
    """
    current_os = detect_os()

    if shell_type == 'powershell':
        if current_os == 'windows':
            return 'powershell.exe', ['-NoProfile', '-ExecutionPolicy', 'Bypass', '-Command', command]
        return 'pwsh', ['-NoProfile', '-Command', command]

    if shell_type == 'cmd' and current_os == 'windows':
        return 'cmd.exe', ['/c', command]

    if current_os == 'windows':
        # bash on Windows goes through WSL, which does not inherit cwd
        if cwd:
            command = f"cd {shlex.quote(to_wsl_path(cwd))} && {command}"
        return 'wsl', ['bash', '-lc', command]

    return 'bash', ['-lc', command]


def resolve_workspace_root(path: Optional[str]) -> Optional[Path]:
    """Resolve a configured workspace path to an existing directory.

    Args:
        path: Workspace path; None means the current directory

    Returns:
        Absolute directory path, or None when it does not exist
    """
    if path is None:
        return Path.cwd()

    path = os.path.expandvars(os.path.expanduser(path))
    root = Path(path)
    if not root.is_dir():
        return None
    return root.resolve()


def safe_file_name(name: str) -> str:
    """Turn a task label into a name usable for a log file."""
    cleaned = re.sub(r'[^A-Za-z0-9._-]+', '_', name).strip('._')
    return cleaned or 'task'
