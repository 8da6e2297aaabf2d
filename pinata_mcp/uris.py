"""Conversion of ``file://`` resource URIs to local path strings."""

from __future__ import annotations

import os
from typing import Optional
from urllib.parse import quote, unquote

FILE_SCHEME = "file://"


def file_uri_to_path(uri: str, windows: Optional[bool] = None) -> str:
    """
    Strip the ``file://`` scheme and URL-decode the remainder.

    On Windows ``file:///C:/x`` also loses the third slash and forward slashes
    become backslashes. The result is untrusted and must go through PathGuard.
    """
    if windows is None:
        windows = os.name == "nt"
    if not uri.startswith(FILE_SCHEME):
        raise ValueError(f"Resource URI must be a file:// URI: {uri}")

    if windows and uri.startswith(FILE_SCHEME + "/"):
        remainder = uri[len(FILE_SCHEME) + 1 :]
    else:
        remainder = uri[len(FILE_SCHEME) :]

    path = unquote(remainder)
    if windows:
        path = path.replace("/", "\\")
    if not path:
        raise ValueError(f"Resource URI has no path: {uri}")
    return path


def path_to_file_uri(path: str) -> str:
    if os.name == "nt":
        return FILE_SCHEME + "/" + quote(path.replace("\\", "/"), safe="/:")
    return FILE_SCHEME + quote(path)


def coerce_local_path(value: str) -> str:
    """Accept either a ``file://`` URI or a plain path."""
    if value.startswith(FILE_SCHEME):
        return file_uri_to_path(value)
    return value
