"""Configuration package."""

from repowatch.config.settings import DEMO_REPOS, RepoRef, Settings, parse_repo_list, settings

__all__ = [
    "DEMO_REPOS",
    "RepoRef",
    "Settings",
    "parse_repo_list",
    "settings",
]
