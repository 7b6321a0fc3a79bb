"""Editor session state: at most one configuration editor is open."""
import copy
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EditorSession(BaseModel):
    """State of the open editor panel."""
    selected: Optional[str] = Field(default=None, description="Identity of the selected configuration")
    editing: bool = False
    original: Optional[Dict[str, Any]] = Field(default=None, description="Spec as it was when editing started")

    def select(self, identity: Optional[str]) -> None:
        # switching selection abandons an edit in progress
        if identity != self.selected:
            self.cancel_edit()
        self.selected = identity

    def begin_edit(self, spec: Dict[str, Any]) -> None:
        self.editing = True
        self.original = copy.deepcopy(spec)

    def cancel_edit(self) -> None:
        self.editing = False
        self.original = None


class SessionHolder:
    """Owns the single editor session, if one is open."""

    def __init__(self):
        self.session: Optional[EditorSession] = None

    def open(self, identity: Optional[str] = None) -> EditorSession:
        """Open the editor, or reveal the one already open.

        Args:
            identity: Configuration to select, if any

        Returns:
            The open session
        """
        if self.session is None:
            self.session = EditorSession()
        if identity is not None:
            self.session.select(identity)
        return self.session

    def close(self) -> bool:
        was_open = self.session is not None
        self.session = None
        return was_open
