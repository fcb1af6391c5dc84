from .discovery import discover_files  # noqa: F401
