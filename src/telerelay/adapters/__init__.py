"""Adapters binding the core to SQLite and Telegram."""
