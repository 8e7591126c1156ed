"""Core domain package for telerelay.

Core contains catalog resolution, chat buffering and retrieval logic without
any Telegram or storage-specific code, keeping the business logic portable.
"""
