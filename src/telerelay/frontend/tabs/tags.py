"""Tags tab implementation."""

from __future__ import annotations

from typing import Any

from textual import on
from textual.containers import Container, Vertical
from textual.widgets import Input, Static

from ..validators import parse_priority, parse_tags


class TagsTab(Container):
    """Allowed tags, their priority classes and the country-wide settings."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._loading_form = False

    def compose(self):
        with Vertical(id="tags-panel"):
            yield Static("Tags", classes="panel-title")
            yield Static("allowed tags (single letters, Enter to apply)", classes="form-label")
            yield Input(placeholder="A B C", id="tags-input")
            yield Static("tag priority (leading characters, highest first)", classes="form-label")
            yield Input(placeholder="A B", id="priority-input")
            yield Static("country keyword", classes="form-label")
            yield Input(placeholder="all", id="country-keyword-input")
            yield Static("country region (listed last)", classes="form-label")
            yield Input(placeholder="RF", id="country-region-input")
            yield Static("", id="tags-error", classes="form-error")

    def on_mount(self) -> None:
        self.reload_from_config()

    def reload_from_config(self) -> None:
        state = self.app.config_state
        self._loading_form = True
        self.query_one("#tags-input", Input).value = " ".join(state.section("tags", []))
        self.query_one("#priority-input", Input).value = " ".join(state.section("tag_priority", []))
        self.query_one("#country-keyword-input", Input).value = state.section("country_keyword", "")
        self.query_one("#country-region-input", Input).value = state.section("country_region", "")
        self.query_one("#tags-error", Static).update("")
        self._loading_form = False

    def _show_error(self, message: str) -> None:
        self.query_one("#tags-error", Static).update(message)

    def _apply(self, event: Input.Submitted, section: str, value: Any, shown: str) -> None:
        self.app.update_config_section(section, value)
        self._show_error("")
        self._loading_form = True
        event.input.value = shown
        self._loading_form = False

    @on(Input.Submitted, "#tags-input")
    def _on_tags_submitted(self, event: Input.Submitted) -> None:
        parsed = parse_tags(event.value)
        if parsed.error:
            self._show_error(parsed.error)
            return
        self._apply(event, "tags", parsed.value, " ".join(parsed.value))

    @on(Input.Submitted, "#priority-input")
    def _on_priority_submitted(self, event: Input.Submitted) -> None:
        parsed = parse_priority(event.value)
        self._apply(event, "tag_priority", parsed.value, " ".join(parsed.value))

    @on(Input.Submitted, "#country-keyword-input")
    def _on_keyword_submitted(self, event: Input.Submitted) -> None:
        keyword = event.value.strip().lower()
        if not keyword or " " in keyword:
            self._show_error("country keyword must be a single word")
            return
        self._apply(event, "country_keyword", keyword, keyword)

    @on(Input.Submitted, "#country-region-input")
    def _on_country_region_submitted(self, event: Input.Submitted) -> None:
        code = event.value.strip()
        codes = {str(region.get("code")) for region in self.app.config_state.section("regions", [])}
        if code and code not in codes:
            self._show_error(f"unknown region {code}")
            return
        self._apply(event, "country_region", code or None, code)
