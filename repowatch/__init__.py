"""repowatch: a read-only activity dashboard for a fixed set of GitHub repositories."""

__version__ = "0.1.0"
