"""Arena Reconciler: keeps exactly one canonical leaderboard arena per eligible project."""

__version__ = "0.1.0"
