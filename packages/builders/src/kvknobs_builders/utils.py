"""Utility functions for builders."""

import os
from pathlib import Path


def map_path(path: str | None, root: str | os.PathLike | None = None) -> str | None:
    """Resolve a configured path to an absolute path.

    Absolute paths are returned as they are. A leading ``~/`` and any other
    relative path resolve against ``root``, or the current working directory
    when there is no root.

    Args:
        path: Path as written in the configuration
        root: Directory of the configuration document

    Returns:
        The resolved path; blank input is returned unchanged

    Example:
        >>> map_path("secrets/app.json", "/etc/myapp")
        '/etc/myapp/secrets/app.json'
    """
    if path is None or not path.strip():
        return path

    if os.path.isabs(path):
        return path

    if path.startswith(("~/", "~\\")):
        path = path[2:]

    base = Path(root) if root is not None else Path.cwd()
    return os.path.abspath(str(base / path))
