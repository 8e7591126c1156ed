"""Regions tab implementation."""

from __future__ import annotations

from typing import Any, Optional

from textual import on
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Button, DataTable, Input, Static

from ..modals import AddRegionScreen, DeleteRegionScreen
from ..validators import alias_conflict, parse_aliases


class RegionsTab(Container):
    """Regions tab for editing config.regions."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._loading_form = False
        self._current_row_key: Optional[str] = None
        self._table_ready = False

    def compose(self):
        with Vertical(id="regions-panel"):
            with Horizontal(id="regions-body"):
                with Container(id="regions-left"):
                    yield DataTable(id="regions-table", cursor_type="row")
                with Container(id="regions-right"):
                    yield Static("Region details", classes="panel-title")
                    yield Static("code", classes="form-label")
                    yield Static("", id="region-code")
                    yield Static("aliases (comma separated, Enter to apply)", classes="form-label")
                    yield Input(placeholder="moscow, msk", id="aliases-input")
                    yield Static("", id="aliases-error", classes="form-error")
            with Horizontal(id="regions-actions"):
                yield Button("Add", id="add-region", variant="success")
                yield Button("Delete", id="delete-region", variant="error")

    def on_mount(self) -> None:
        table = self.query_one("#regions-table", DataTable)
        table.add_column("code", key="code", width=12)
        table.add_column("aliases", key="aliases", width=48)
        table.zebra_stripes = True
        self._table_ready = True
        self.reload_from_config()
        self._set_form_state(None)

    def reload_from_config(self) -> None:
        if not self._table_ready:
            return
        table = self.query_one("#regions-table", DataTable)
        table.clear()
        for index, region in enumerate(self._get_regions()):
            table.add_row(
                str(region.get("code", "")),
                ", ".join(region.get("aliases", [])),
                key=str(index),
            )
        self._update_action_state()

    def _get_regions(self) -> list[dict[str, Any]]:
        return self.app.config_state.section("regions", [])

    def _set_regions(self, regions: list[dict[str, Any]]) -> None:
        self.app.update_config_section("regions", regions)

    def _update_action_state(self) -> None:
        self.query_one("#delete-region", Button).disabled = self._current_row_key is None

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        key = event.row_key
        self._current_row_key = str(key.value if hasattr(key, "value") else key)
        self._set_form_state(self._current_row_key)
        self._update_action_state()

    @on(Input.Changed, "#aliases-input")
    def _on_aliases_changed(self) -> None:
        if not self._loading_form:
            self.query_one("#aliases-error", Static).update("")

    @on(Input.Submitted, "#aliases-input")
    def _on_aliases_submitted(self, event: Input.Submitted) -> None:
        index = self._current_index()
        regions = self._get_regions()
        if index is None or index >= len(regions):
            return
        error = self.query_one("#aliases-error", Static)
        parsed = parse_aliases(event.value)
        if parsed.error:
            error.update(parsed.error)
            return
        code = str(regions[index].get("code", ""))
        conflict = alias_conflict(regions, code, parsed.value, skip=index)
        if conflict:
            error.update(conflict)
            return
        regions[index]["aliases"] = parsed.value
        self._set_regions(regions)
        self.query_one("#regions-table", DataTable).update_cell(
            str(index), "aliases", ", ".join(parsed.value)
        )
        self._loading_form = True
        event.input.value = ", ".join(parsed.value)
        self._loading_form = False

    @on(Button.Pressed, "#add-region")
    def _on_add_region(self) -> None:
        self.app.push_screen(AddRegionScreen(self._get_regions()), self._handle_add_region)

    @on(Button.Pressed, "#delete-region")
    def _on_delete_region(self) -> None:
        index = self._current_index()
        regions = self._get_regions()
        if index is None or index >= len(regions):
            return
        code = str(regions[index].get("code", ""))
        self.app.push_screen(DeleteRegionScreen(code), self._handle_delete_region)

    def _handle_add_region(self, payload: dict[str, Any] | None) -> None:
        if not payload:
            return
        regions = self._get_regions()
        regions.append(payload)
        self._set_regions(regions)
        self.reload_from_config()

    def _handle_delete_region(self, confirmed: bool | None) -> None:
        index = self._current_index()
        regions = self._get_regions()
        if not confirmed or index is None or index >= len(regions):
            return
        removed = regions.pop(index)
        self._set_regions(regions)
        data = self.app.config_state.data or {}
        if data.get("country_region") == removed.get("code"):
            self.app.update_config_section("country_region", None)
        self._current_row_key = None
        self.reload_from_config()
        self._set_form_state(None)

    def _set_form_state(self, row_key: Optional[str]) -> None:
        self._loading_form = True
        code_display = self.query_one("#region-code", Static)
        aliases_input = self.query_one("#aliases-input", Input)
        self.query_one("#aliases-error", Static).update("")
        regions = self._get_regions()
        index = int(row_key) if row_key is not None else None
        if index is None or index >= len(regions):
            code_display.update("")
            aliases_input.value = ""
            aliases_input.disabled = True
        else:
            code_display.update(str(regions[index].get("code", "")))
            aliases_input.value = ", ".join(regions[index].get("aliases", []))
            aliases_input.disabled = False
        self._loading_form = False

    def _current_index(self) -> Optional[int]:
        if self._current_row_key is None:
            return None
        try:
            return int(self._current_row_key)
        except ValueError:
            return None
