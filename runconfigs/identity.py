"""Mapping between configuration identities and source array slots."""
import re
from typing import Protocol, Tuple

from .errors import ConfigurationNotFound
from .models import ConfigKind


class IdentityScheme(Protocol):
    """How identities are assigned to entries and resolved back to slots."""

    def format(self, kind: ConfigKind, index: int) -> str:
        ...

    def parse(self, identity: str) -> Tuple[ConfigKind, int]:
        ...


class PositionalIdentity:
    """Identity is `<kind>-<index>` into the source array.

    Removing or reordering entries reassigns identities of everything after
    the change, and usage records follow the index rather than the entry.
    """

    _pattern = re.compile(r"^(launch|task)-(\d+)$", re.ASCII)

    def format(self, kind: ConfigKind, index: int) -> str:
        return f"{kind.value}-{index}"

    def parse(self, identity: str) -> Tuple[ConfigKind, int]:
        """Split an identity into kind and index.

        Raises:
            ConfigurationNotFound: if the identity is not one that format()
                would produce, e.g. `launch-01`
        """
        match = self._pattern.fullmatch(identity or "")
        if not match:
            raise ConfigurationNotFound(identity)

        kind, index = ConfigKind(match.group(1)), int(match.group(2))
        if self.format(kind, index) != identity:
            raise ConfigurationNotFound(identity)
        return kind, index
