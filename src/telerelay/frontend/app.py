"""Main Textual app for the telerelay catalog editor."""

from __future__ import annotations

import json
from typing import Any

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Center, Container, Horizontal, Vertical
from textual.widgets import Button, ContentSwitcher, Footer, Static, Tab, Tabs

from telerelay import __version__

from .constants import CONFIG_PATH, TELEGRAM_BLUE
from .modals import ReloadConfirmScreen, UnsavedChangesScreen
from .state import ConfigState
from .tabs.regions import RegionsTab
from .tabs.tags import TagsTab


class CatalogEditorApp(App):
    """Catalog editor with global config state and tabs."""

    BINDINGS = [
        ("ctrl+s", "save_config", "Save"),
        ("ctrl+r", "reload_config", "Reload"),
        ("ctrl+q", "request_quit", "Quit"),
    ]

    CSS = """
    Screen {
        background: #0f1a21;
        color: #e8eef5;
    }

    #header {
        height: 6;
        padding: 1 4;
        border-bottom: solid #2a3a46;
    }

    #header-left, #header-right {
        width: 1fr;
    }

    #header-right {
        text-align: right;
    }

    .subtle {
        color: #7f93a3;
    }

    .status-loaded { color: #5fd38d; }
    .status-modified { color: #f5c04a; }
    .status-error { color: #ff6b6b; }

    #tabs-bar {
        height: 3;
    }

    #regions-left {
        width: 2fr;
    }

    #regions-right, #tags-panel {
        width: 1fr;
        padding: 0 2;
    }

    #regions-actions {
        height: 3;
    }

    .panel-title, .modal-title {
        text-style: bold;
        color: #2AABEE;
    }

    .form-label {
        margin-top: 1;
        color: #7f93a3;
    }

    .form-error, .modal-error {
        color: #ff6b6b;
    }

    ModalScreen {
        align: center middle;
    }

    .modal-dialog {
        width: 60;
        height: auto;
        padding: 1 2;
        border: round #2AABEE;
        background: #16242e;
    }

    .modal-actions {
        height: 3;
        margin-top: 1;
    }
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.config_state = ConfigState()

    def compose(self) -> ComposeResult:
        with Container(id="header"):
            with Horizontal(id="header-row"):
                with Vertical(id="header-left"):
                    yield Static(self._title_text(), id="title")
                    yield Static(f"telerelay v{__version__}", classes="subtle")
                with Vertical(id="header-right"):
                    yield Static(f"file: {CONFIG_PATH.name}", classes="subtle")
                    yield Static("", id="header-status")
                    yield Horizontal(
                        Button("Save", id="save-btn"),
                        Button("Reload", id="reload-btn"),
                        id="header-actions",
                    )

        with Container(id="tabs-bar"):
            with Center(id="tabs-center"):
                yield Tabs(Tab("Regions", id="regions"), Tab("Tags", id="tags"), id="tabs")

        with ContentSwitcher(id="content"):
            yield RegionsTab(id="regions")
            yield TagsTab(id="tags")
        yield Footer()

    def on_mount(self) -> None:
        self._load_config()
        self.query_one("#content", ContentSwitcher).current = "regions"

    def on_tabs_tab_activated(self, event: Tabs.TabActivated) -> None:
        if event.tab.id:
            self.query_one("#content", ContentSwitcher).current = event.tab.id

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "save-btn":
            self.action_save_config()
        elif event.button.id == "reload-btn":
            self.action_reload_config()

    def action_save_config(self) -> None:
        self._save_config()

    def action_reload_config(self) -> None:
        if self.config_state.dirty:
            self.push_screen(ReloadConfirmScreen(), self._handle_reload_choice)
        else:
            self._load_config()

    def action_request_quit(self) -> None:
        if self.config_state.dirty:
            self.push_screen(UnsavedChangesScreen(), self._handle_exit_choice)
        else:
            self.exit()

    def _handle_exit_choice(self, choice: str | None) -> None:
        if choice == "save" and self._save_config():
            self.exit()
        elif choice == "discard":
            self.exit()

    def _handle_reload_choice(self, choice: str | None) -> None:
        if choice == "save" and self._save_config():
            self._load_config()
        elif choice == "reload":
            self._load_config()

    def _load_config(self) -> None:
        self.config_state.data = None
        self.config_state.dirty = False
        try:
            loaded = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
            if not isinstance(loaded, dict):
                raise ValueError("config root must be an object")
            self.config_state.data = loaded
            self.config_state.error = None
        except FileNotFoundError:
            self.config_state.error = f"{CONFIG_PATH.name} missing"
        except json.JSONDecodeError as exc:
            self.config_state.error = f"{CONFIG_PATH.name} error: {exc.msg}"
        except ValueError as exc:
            self.config_state.error = str(exc)
        self._refresh_header()
        self.query_one(RegionsTab).reload_from_config()
        self.query_one(TagsTab).reload_from_config()

    def _save_config(self) -> bool:
        if self.config_state.data is None:
            self.config_state.error = "Nothing to save"
            self._refresh_header()
            return False
        try:
            CONFIG_PATH.write_text(
                json.dumps(self.config_state.data, indent=2, ensure_ascii=False) + "\n",
                encoding="utf-8",
            )
        except OSError as exc:
            self.config_state.error = f"save failed: {exc.strerror or exc}"
            self._refresh_header()
            return False
        self.config_state.dirty = False
        self.config_state.error = None
        self._refresh_header()
        return True

    def _refresh_header(self) -> None:
        status = self.query_one("#header-status", Static)
        status.remove_class("status-loaded", "status-modified", "status-error")
        if self.config_state.error:
            status.update(f"config: {self.config_state.error}")
            status.add_class("status-error")
        elif self.config_state.dirty:
            status.update("config: modified *")
            status.add_class("status-modified")
        else:
            status.update("config: loaded")
            status.add_class("status-loaded")

        save_btn = self.query_one("#save-btn", Button)
        save_btn.disabled = self.config_state.data is None or not self.config_state.dirty

    def update_config_section(self, section: str, value: Any) -> None:
        """Update a config section in memory and mark dirty."""
        if self.config_state.data is None:
            self.config_state.data = {}
        self.config_state.data[section] = value
        self.config_state.dirty = True
        self._refresh_header()

    @staticmethod
    def _title_text() -> Text:
        return Text.assemble(
            ("TELE", TELEGRAM_BLUE),
            ("RELAY > Catalog Editor", "bold"),
        )
