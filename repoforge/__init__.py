"""Track, sync, prune, health-check and policy-check git repositories kept in a SQLite state database."""

__version__ = "0.1.0"