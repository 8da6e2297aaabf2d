"""
Pinata MCP server with sandboxed local file access.
"""

from .security import (
    AccessDenied,
    ParentNotFound,
    PathGuard,
    SandboxViolation,
    StartupDirectoryInvalid,
    validate_allowed_roots,
)

__all__ = [
    "AccessDenied",
    "ParentNotFound",
    "PathGuard",
    "SandboxViolation",
    "StartupDirectoryInvalid",
    "validate_allowed_roots",
]
