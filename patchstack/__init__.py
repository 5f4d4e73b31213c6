"""patchstack: layered patch sets on top of pinned upstream repositories."""

__version__ = "0.1.0"
