"""Modal dialogs for the catalog editor."""

from __future__ import annotations

from typing import Any

from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Static

from .validators import alias_conflict, parse_aliases, parse_region_code


class UnsavedChangesScreen(ModalScreen[str]):
    """Prompt when exiting with unsaved changes."""

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Unsaved changes", classes="modal-title"),
            Static("Save the catalog before exit?", classes="modal-body"),
            Horizontal(
                Button("Save", id="unsaved-save", variant="success"),
                Button("Discard", id="unsaved-discard", variant="error"),
                Button("Cancel", id="unsaved-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        choices = {"unsaved-save": "save", "unsaved-discard": "discard"}
        self.dismiss(choices.get(event.button.id or "", "cancel"))


class ReloadConfirmScreen(ModalScreen[str]):
    """Prompt when reloading with unsaved changes."""

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Reload catalog?", classes="modal-title"),
            Static("Unsaved changes will be lost.", classes="modal-body"),
            Horizontal(
                Button("Save", id="reload-save"),
                Button("Reload", id="reload-reload", variant="warning"),
                Button("Cancel", id="reload-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        choices = {"reload-save": "save", "reload-reload": "reload"}
        self.dismiss(choices.get(event.button.id or "", "cancel"))


class AddRegionScreen(ModalScreen[dict[str, Any] | None]):
    """Modal form for adding a region to the catalog."""

    def __init__(self, regions: list[dict[str, Any]]) -> None:
        super().__init__()
        self._regions = regions

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Add region", classes="modal-title"),
            Static("", id="add-error", classes="modal-error"),
            Static("code", classes="form-label"),
            Input(placeholder="MSK", id="add-code"),
            Static("aliases (comma separated)", classes="form-label"),
            Input(placeholder="moscow, msk", id="add-aliases"),
            Horizontal(
                Button("Add", id="add-confirm", variant="success"),
                Button("Cancel", id="add-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "add-cancel":
            self.dismiss(None)
            return
        if event.button.id != "add-confirm":
            return
        error = self.query_one("#add-error", Static)
        code = parse_region_code(self.query_one("#add-code", Input).value)
        if code.error:
            error.update(code.error)
            return
        aliases = parse_aliases(self.query_one("#add-aliases", Input).value)
        if aliases.error:
            error.update(aliases.error)
            return
        conflict = alias_conflict(self._regions, code.value, aliases.value)
        if conflict:
            error.update(conflict)
            return
        self.dismiss({"code": code.value, "aliases": aliases.value})


class DeleteRegionScreen(ModalScreen[bool]):
    """Confirm deletion of a region."""

    def __init__(self, code: str) -> None:
        super().__init__()
        self._code = code

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Delete region?", classes="modal-title"),
            Static(self._code, classes="modal-body"),
            Static("Archived messages keep the code.", classes="modal-body"),
            Horizontal(
                Button("Delete", id="delete-confirm", variant="error"),
                Button("Cancel", id="delete-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "delete-confirm")
