"""FastAPI application exposing the run configuration editor."""
import logging
import socket
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .config import Settings, SettingsManager, WorkspacePaths
from .dispatcher import (
    DebugLauncher,
    ExecutionDispatcher,
    HttpDebugLauncher,
    NotificationCenter,
    ShellTaskRunner,
)
from .errors import ConfigurationNotFound, MalformedConfigFile, NoWorkspaceFolder
from .forms import collect_form_data, form_fields, format_property_label
from .models import ConfigKind
from .repository import ConfigurationRepository
from .session import SessionHolder
from .usage import UsageStore
from .utils import resolve_workspace_root

logger = logging.getLogger(__name__)

PORT_SEARCH_RANGE = 20


# API Models
class CreateRequest(BaseModel):
    kind: ConfigKind


class UpdateRequest(BaseModel):
    spec: Optional[Dict[str, Any]] = None
    fields: Optional[Dict[str, str]] = None
    run: bool = False


class SessionRequest(BaseModel):
    identity: Optional[str] = None
    edit: bool = False


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(levelname)s] %(message)s",
    )


def create_app(settings: Optional[Settings] = None,
               launcher: Optional[DebugLauncher] = None,
               runner: Optional[ShellTaskRunner] = None) -> FastAPI:
    """Build the API around one workspace.

    Args:
        settings: Settings to use (loaded from runconfigs.yaml when None)
        launcher: Debug launcher (IDE bridge client by default)
        runner: Task runner (local shell runner by default)
    """
    if settings is None:
        settings = SettingsManager().load()

    def workspace_root() -> Optional[Path]:
        return resolve_workspace_root(settings.workspace)

    root = workspace_root()
    paths = WorkspacePaths(root) if root is not None else None

    if launcher is None:
        launcher = HttpDebugLauncher(settings.bridge_url, settings.bridge_timeout_sec)
    if runner is None:
        log_dir = paths.task_log_dir if paths else Path(tempfile.gettempdir()) / "runconfigs-logs"
        runner = ShellTaskRunner(root, log_dir, shell_type=settings.task_shell)

    notifier = NotificationCenter()
    usage = UsageStore(paths.usage_file if paths else None)
    usage.load()
    dispatcher = ExecutionDispatcher(launcher, runner, notifier, workspace_root)
    repository = ConfigurationRepository(workspace_root, usage, dispatcher)
    repository.reload()
    sessions = SessionHolder()

    app = FastAPI(
        title="Run Configurations",
        description="Run, create, edit and delete launch and task configurations",
        version=__version__
    )
    app.state.settings = settings
    app.state.repository = repository
    app.state.notifier = notifier
    app.state.runner = runner
    app.state.sessions = sessions

    @app.exception_handler(ConfigurationNotFound)
    async def not_found_handler(request: Request, exc: ConfigurationNotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(NoWorkspaceFolder)
    async def no_workspace_handler(request: Request, exc: NoWorkspaceFolder):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(MalformedConfigFile)
    async def malformed_handler(request: Request, exc: MalformedConfigFile):
        return JSONResponse(status_code=422, content={"detail": str(exc), "file": str(exc.path)})

    # Routes
    @app.get("/api/configurations")
    async def list_configurations():
        """Get all configurations, most used first."""
        repository.reload()
        return {"configurations": repository.list()}

    @app.get("/api/configurations/{identity}")
    async def get_configuration(identity: str):
        return repository.get(identity)

    @app.get("/api/configurations/{identity}/form")
    async def get_form(identity: str):
        """Get a configuration as editable text fields."""
        item = repository.get(identity)
        fields = [
            {"key": key, "label": format_property_label(key), "value": value}
            for key, value in form_fields(item.spec).items()
        ]
        return {"identity": identity, "fields": fields}

    @app.post("/api/configurations")
    async def create_configuration(request: CreateRequest):
        """Create a configuration with default values and open it for editing."""
        identity = repository.create(request.kind)
        item = repository.get(identity)
        sessions.open(identity).begin_edit(item.spec)
        return {"status": "success", "identity": identity, "configuration": item}

    @app.put("/api/configurations/{identity}")
    async def update_configuration(identity: str, request: UpdateRequest):
        """Save a configuration, optionally running it afterwards."""
        if request.fields is not None:
            spec = collect_form_data(request.fields)
        elif request.spec is not None:
            spec = request.spec
        else:
            raise HTTPException(status_code=400, detail="Either spec or fields is required")

        repository.update(identity, spec)
        session = sessions.session
        if session and session.selected == identity:
            session.cancel_edit()

        if not request.run:
            notifier.notify("Configuration saved successfully!")
            return {"status": "success", "message": "Configuration saved"}

        result = await repository.run(repository.get(identity))
        return {"status": result.status, "message": result.message}

    @app.delete("/api/configurations/{identity}")
    async def delete_configuration(identity: str, confirm: bool = False):
        """Delete a configuration. Requires confirm=true."""
        if not confirm:
            raise HTTPException(status_code=400, detail="Deletion must be confirmed")

        repository.remove(identity)
        session = sessions.session
        if session and session.selected == identity:
            session.select(None)

        notifier.notify("Configuration deleted successfully!")
        return {"status": "success", "message": "Configuration deleted"}

    @app.post("/api/configurations/{identity}/run")
    async def run_configuration(identity: str):
        repository.reload()
        result = await repository.run(repository.get(identity))
        return result

    @app.post("/api/reload")
    async def reload_configurations():
        repository.reload()
        return {"status": "success", "count": len(repository.list())}

    @app.get("/api/notifications")
    async def get_notifications():
        return {"notifications": notifier.recent()}

    @app.get("/api/tasks/{label}/logs")
    async def get_task_logs(label: str, lines: int = 2000):
        """Get task output logs."""
        return {"label": label, "logs": runner.read_log(label, lines)}

    @app.post("/api/tasks/{label}/stop")
    async def stop_task(label: str):
        if runner.stop(label):
            return {"status": "success", "message": "Task stopped"}
        raise HTTPException(status_code=404, detail="Task is not running")

    @app.get("/api/session")
    async def get_session():
        return {"session": sessions.session}

    @app.post("/api/session")
    async def open_session(request: SessionRequest):
        """Open the editor, or reveal it if it is already open."""
        session = sessions.open(request.identity)
        if request.edit:
            if session.selected is None:
                raise HTTPException(status_code=400, detail="Nothing selected to edit")
            session.begin_edit(repository.get(session.selected).spec)
        return {"session": session}

    @app.delete("/api/session")
    async def close_session():
        return {"status": "success", "closed": sessions.close()}

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint for the editor itself."""
        return {"status": "ok", "message": "Run configurations editor is running", "workspace": str(root) if root else None}

    return app


def find_free_port(host: str, start_port: int, search_range: int = PORT_SEARCH_RANGE) -> Optional[int]:
    """Return the first port from start_port upwards that can be bound on host, or None."""
    for port in range(start_port, start_port + search_range + 1):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((host, port))
            except OSError:
                continue
        return port
    return None


def main():
    """Run the editor."""
    settings = SettingsManager().load()
    configure_logging(settings.log_level)

    host = settings.host
    port = find_free_port(host, settings.port)
    if port is None:
        logger.error("No free port on %s between %d and %d", host, settings.port, settings.port + PORT_SEARCH_RANGE)
        sys.exit(1)
    if port != settings.port:
        logger.warning("Port %d is in use, serving on %d", settings.port, port)

    app = create_app(settings)

    print("=" * 60)
    print("  Run Configurations Editor")
    print("=" * 60)
    print()
    print(f"  Workspace: {app.state.repository.resolve_workspace_root() or '(none)'}")
    print(f"  Serving API at http://{host}:{port}")
    print("  Press Ctrl+C to stop")
    print()
    print("=" * 60)

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
