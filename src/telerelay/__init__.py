"""telerelay: region/tag classified relay bot for Telegram chats."""

__version__ = "1.0.0"
