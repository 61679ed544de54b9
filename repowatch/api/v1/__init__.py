from repowatch.api.v1 import dashboard

__all__ = [
    "dashboard",
]
