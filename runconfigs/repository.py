"""Configuration repository over launch.json and tasks.json."""
import logging
import unicodedata
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel

from .config import WorkspacePaths
from .dispatcher import ExecutionDispatcher
from .errors import ConfigurationNotFound, MalformedConfigFile, NoWorkspaceFolder
from .identity import IdentityScheme, PositionalIdentity
from .jsonc import dump_document, load_document
from .models import (
    ConfigKind,
    ConfigurationItem,
    ExecutionResult,
    default_launch_spec,
    default_task_spec,
)
from .usage import UsageStore

logger = logging.getLogger(__name__)

LAUNCH_ICONS = {
    "node": "symbol-event",
    "python": "snake",
    "chrome": "browser",
    "extensionHost": "extensions",
    "cppdbg": "tools",
    "java": "coffee",
}

TASK_ICONS = {
    "shell": "terminal",
    "npm": "package",
    "typescript": "symbol-method",
}


class _Source:
    """Where one kind of configuration is stored."""

    def __init__(self, kind: ConfigKind, array_key: str, name_key: str, version: str,
                 icons: Dict[str, str], default_icon: str):
        self.kind = kind
        self.array_key = array_key
        self.name_key = name_key
        self.version = version
        self.icons = icons
        self.default_icon = default_icon

    def empty_document(self) -> Dict[str, Any]:
        return {"version": self.version, self.array_key: []}

    def entries(self, document: Dict[str, Any], path: Path) -> List[Any]:
        """Return the document's configuration array, adding it if missing."""
        entries = document.setdefault(self.array_key, [])
        if not isinstance(entries, list):
            raise MalformedConfigFile(path, f"'{self.array_key}' is not an array")
        return entries

    def icon_for(self, entry: Any) -> str:
        type_name = entry.get("type") if isinstance(entry, dict) else None
        return self.icons.get(type_name, self.default_icon)

    def name_of(self, entry: Any) -> str:
        name = entry.get(self.name_key) if isinstance(entry, dict) else None
        return name if isinstance(name, str) else ""


SOURCES = {
    ConfigKind.LAUNCH: _Source(ConfigKind.LAUNCH, "configurations", "name", "0.2.0", LAUNCH_ICONS, "debug-alt"),
    ConfigKind.TASK: _Source(ConfigKind.TASK, "tasks", "label", "2.0.0", TASK_ICONS, "tools"),
}


def _collation_key(name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", name)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


def _sort_key(item: ConfigurationItem):
    # most used first, then name ignoring accents and case, lowercase before uppercase
    name = item.display_name
    return (-item.usage_count, _collation_key(name), name.casefold(), name.swapcase())


class ConfigurationRepository:
    """Loads, ranks and edits launch and task configurations.

    Identities are positional. Every mutation re-reads its target file
    before addressing an entry by index, and rewrites the whole document.
    """

    def __init__(self, resolve_workspace_root: Callable[[], Optional[Path]],
                 usage: UsageStore, dispatcher: ExecutionDispatcher,
                 identity: Optional[IdentityScheme] = None):
        """Initialize repository.

        Args:
            resolve_workspace_root: Returns the workspace root or None
            usage: Usage store joined into list() and updated by run()/remove()
            dispatcher: Executes configurations for run()
            identity: Identity scheme (positional by default)
        """
        self.resolve_workspace_root = resolve_workspace_root
        self.usage = usage
        self.dispatcher = dispatcher
        self.identity = identity or PositionalIdentity()
        self.launch_specs: List[Any] = []
        self.task_specs: List[Any] = []

    def _paths(self) -> WorkspacePaths:
        root = self.resolve_workspace_root()
        if root is None:
            raise NoWorkspaceFolder()
        return WorkspacePaths(root)

    def _file_for(self, kind: ConfigKind, paths: WorkspacePaths) -> Path:
        return paths.launch_file if kind == ConfigKind.LAUNCH else paths.tasks_file

    def _read_entries(self, kind: ConfigKind, path: Path) -> List[Any]:
        if not path.exists():
            return []
        document = load_document(path)
        return list(SOURCES[kind].entries(document, path))

    def _load_kind(self, kind: ConfigKind, paths: Optional[WorkspacePaths]) -> List[Any]:
        if paths is None:
            return []
        path = self._file_for(kind, paths)
        try:
            return self._read_entries(kind, path)
        except (OSError, MalformedConfigFile) as e:
            logger.error("Error loading %s configurations: %s", kind.value, e)
            return []

    def reload(self) -> None:
        """Re-read both configuration files.

        A failure in one file empties only that collection.
        """
        root = self.resolve_workspace_root()
        paths = WorkspacePaths(root) if root is not None else None
        if paths is None:
            logger.warning("No workspace folder, no configurations loaded")

        self.launch_specs = self._load_kind(ConfigKind.LAUNCH, paths)
        self.task_specs = self._load_kind(ConfigKind.TASK, paths)
        logger.debug("Loaded %d launch and %d task configurations",
                     len(self.launch_specs), len(self.task_specs))

    def _items_for(self, kind: ConfigKind, entries: List[Any]) -> List[ConfigurationItem]:
        source = SOURCES[kind]
        items = []
        for index, entry in enumerate(entries):
            identity = self.identity.format(kind, index)
            usage = self.usage.get(identity)
            items.append(ConfigurationItem(
                identity=identity,
                display_name=source.name_of(entry),
                kind=kind,
                spec=entry if isinstance(entry, dict) else {},
                icon_hint=source.icon_for(entry),
                usage_count=usage.count if usage else 0,
                last_used_at=usage.last_used if usage else None,
            ))
        return items

    def list(self) -> List[ConfigurationItem]:
        """Return all configurations, most used first, then by name."""
        items = self._items_for(ConfigKind.LAUNCH, self.launch_specs)
        items += self._items_for(ConfigKind.TASK, self.task_specs)
        return sorted(items, key=_sort_key)

    def get(self, identity: str) -> ConfigurationItem:
        """Find a configuration in the current snapshot.

        Raises:
            ConfigurationNotFound: if no loaded configuration has this identity
        """
        for item in self.list():
            if item.identity == identity:
                return item
        raise ConfigurationNotFound(identity)

    def create(self, kind: Union[ConfigKind, str]) -> str:
        """Append a default configuration of the given kind.

        Args:
            kind: 'launch' or 'task'

        Returns:
            Identity of the new entry

        Raises:
            NoWorkspaceFolder: if there is no workspace to write to
        """
        kind = ConfigKind(kind)
        source = SOURCES[kind]
        path = self._file_for(kind, self._paths())

        document = load_document(path) if path.exists() else source.empty_document()
        entries = source.entries(document, path)
        spec = default_launch_spec() if kind == ConfigKind.LAUNCH else default_task_spec()
        entries.append(spec.to_document())
        dump_document(path, document)

        identity = self.identity.format(kind, len(entries) - 1)
        logger.info("Created %s", identity)
        self.reload()
        return identity

    def _locate(self, identity: str):
        kind, index = self.identity.parse(identity)
        source = SOURCES[kind]
        path = self._file_for(kind, self._paths())

        if not path.exists():
            raise ConfigurationNotFound(identity)
        document = load_document(path)
        entries = source.entries(document, path)
        if not 0 <= index < len(entries):
            raise ConfigurationNotFound(identity)
        return path, document, entries, index

    def update(self, identity: str, new_spec: Union[Mapping[str, Any], BaseModel]) -> None:
        """Replace a configuration in place and rewrite its file.

        Raises:
            NoWorkspaceFolder: if there is no workspace
            ConfigurationNotFound: if the identity is outside the current array
        """
        if isinstance(new_spec, BaseModel):
            new_spec = new_spec.to_document() if hasattr(new_spec, "to_document") else new_spec.model_dump()

        path, document, entries, index = self._locate(identity)
        entries[index] = dict(new_spec)
        dump_document(path, document)

        logger.info("Updated %s", identity)
        self.reload()

    def remove(self, identity: str) -> None:
        """Delete a configuration; later identities of the same kind shift down.

        Raises:
            NoWorkspaceFolder: if there is no workspace
            ConfigurationNotFound: if the identity is outside the current array
        """
        path, document, entries, index = self._locate(identity)
        del entries[index]
        dump_document(path, document)

        logger.info("Removed %s", identity)
        self.reload()
        self.usage.forget(identity)

    async def run(self, item: ConfigurationItem) -> ExecutionResult:
        """Record a use of the configuration, then execute it.

        Usage is counted before dispatch, so failed starts are counted too.
        """
        self.usage.record_use(item.identity)
        return await self.dispatcher.dispatch(item)
