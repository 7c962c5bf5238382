"""In-memory key-value store core: expiry, eviction, an append-only file, SQL-like queries and HTTP-to-command conversion."""

__version__ = "0.1.0"