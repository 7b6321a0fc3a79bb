"""Persisted usage statistics for configurations."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional

from pydantic import ValidationError

from .errors import PersistenceFailure
from .models import UsageEntry

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime) -> str:
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


class UsageStore:
    """Invocation counts and last-used timestamps keyed by identity.

    Usage tracking is best-effort: unreadable files load as empty and write
    failures are logged instead of raised.
    """

    def __init__(self, usage_path: Optional[Path], clock: Callable[[], datetime] = utc_now):
        """Initialize usage store.

        Args:
            usage_path: Side file location, or None to keep usage in memory only
            clock: Returns the current time; replaced in tests
        """
        self.usage_path = usage_path
        self._clock = clock
        self.entries: Dict[str, UsageEntry] = {}

    def load(self) -> Dict[str, UsageEntry]:
        """Load usage data from the side file.

        Returns:
            Mapping of identity to usage entry (empty when unavailable)
        """
        self.entries = {}
        if self.usage_path is None or not self.usage_path.exists():
            return self.entries

        try:
            data = json.loads(self.usage_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Error loading usage data from %s: %s", self.usage_path, e)
            return self.entries

        if not isinstance(data, dict):
            logger.warning("Ignoring usage data in %s: expected an object", self.usage_path)
            return self.entries

        for identity, raw in data.items():
            try:
                self.entries[identity] = UsageEntry.model_validate(raw)
            except ValidationError as e:
                logger.warning("Dropping invalid usage record %r: %s", identity, e)

        return self.entries

    def get(self, identity: str) -> Optional[UsageEntry]:
        return self.entries.get(identity)

    def record_use(self, identity: str) -> UsageEntry:
        """Count one invocation of a configuration and persist.

        Args:
            identity: Configuration identity

        Returns:
            The updated usage entry
        """
        now = self._clock()
        entry = self.entries.get(identity)
        if entry is None:
            entry = UsageEntry(count=0, last_used=now)
            self.entries[identity] = entry

        entry.count += 1
        entry.last_used = now
        self._save_quietly()
        return entry

    def forget(self, identity: str) -> None:
        """Drop the usage entry of a deleted configuration and persist."""
        self.entries.pop(identity, None)
        self._save_quietly()

    def save(self) -> None:
        """Write all entries to the side file.

        Raises:
            PersistenceFailure: if the file cannot be written
        """
        if self.usage_path is None:
            logger.debug("No usage file configured, keeping usage data in memory")
            return

        data = {}
        for identity, entry in self.entries.items():
            record = {"count": entry.count}
            if entry.last_used is not None:
                record["lastUsed"] = _isoformat(entry.last_used)
            data[identity] = record
        try:
            self.usage_path.parent.mkdir(parents=True, exist_ok=True)
            self.usage_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            raise PersistenceFailure(self.usage_path, str(e)) from e

    def _save_quietly(self) -> None:
        try:
            self.save()
        except PersistenceFailure as e:
            logger.error("Error saving usage data: %s", e)
