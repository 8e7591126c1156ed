"""Textual catalog editor for config.json."""
