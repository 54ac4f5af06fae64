"""xi login server: Lua-backed settings, account login and auction expiry."""

__version__ = "0.1.0"
