"""Account and pdata storage, and server probing, for a Titanfall 2 master server."""

__version__ = "0.1.0"