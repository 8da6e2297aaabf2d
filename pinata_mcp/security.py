from __future__ import annotations

import asyncio
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence, Union

logger = logging.getLogger(__name__)

PREFIX_SEGMENT = "segment"
PREFIX_RAW = "raw"


class SandboxViolation(PermissionError):
    """Raised when a requested path may not be touched."""


class AccessDenied(SandboxViolation):
    """The path (or its real location) lies outside every allowed root."""


class ParentNotFound(SandboxViolation):
    """The path does not exist and neither does its parent directory."""


class StartupDirectoryInvalid(SandboxViolation):
    """A configured root is missing or is not a directory."""


@dataclass(frozen=True, slots=True)
class Resolved:
    path: str


@dataclass(frozen=True, slots=True)
class NotFound:
    path: str


RealPath = Union[Resolved, NotFound]


def expand_home(user_path: str) -> str:
    """Expand a leading ``~`` or ``~/`` to the current user's home directory."""
    if user_path == "~":
        return str(Path.home())
    if user_path.startswith("~/") or user_path.startswith("~" + os.sep):
        return os.path.join(str(Path.home()), user_path[2:])
    return user_path


def normalize_path(user_path: str) -> str:
    """
    Absolute, lexically normalized form of a user path.

    No filesystem lookup happens here: ``..`` is collapsed textually, so the
    result is only suitable for the allowlist comparison.
    """
    if not user_path:
        raise AccessDenied("Access denied: path must not be empty.")
    return os.path.normpath(os.path.abspath(expand_home(user_path)))


def real_path(path: str) -> RealPath:
    """Follow every symlink in ``path``; ``NotFound`` when any part is missing."""
    try:
        return Resolved(str(Path(path).resolve(strict=True)))
    except (OSError, RuntimeError):
        # RuntimeError: symlink loop on older interpreters
        return NotFound(path)


def is_within(path: str, roots: Iterable[str], mode: str = PREFIX_SEGMENT) -> bool:
    for root in roots:
        if mode == PREFIX_RAW:
            if path.startswith(root):
                return True
            continue
        if path == root or path.startswith(root.rstrip(os.sep) + os.sep):
            return True
    return False


class PathGuard:
    """
    Gate between caller-supplied path strings and the filesystem.

    ``roots`` must already be canonical (see ``validate_allowed_roots``).
    The guard holds no mutable state, so one instance is shared by every
    concurrent tool call.
    """

    def __init__(self, roots: Sequence[str], prefix_match: str = PREFIX_SEGMENT) -> None:
        if not roots:
            raise StartupDirectoryInvalid("At least one allowed directory is required.")
        if prefix_match not in (PREFIX_SEGMENT, PREFIX_RAW):
            raise ValueError(f"Unknown prefix match mode: {prefix_match}")
        self._roots: tuple[str, ...] = tuple(roots)
        self.prefix_match = prefix_match

    @property
    def roots(self) -> tuple[str, ...]:
        return self._roots

    def _contained(self, path: str) -> bool:
        return is_within(path, self._roots, self.prefix_match)

    def _deny(self, requested: str, offending: str, reason: str) -> AccessDenied:
        allowed_str = ", ".join(self._roots)
        logger.warning("Denied %s (%s): %s", requested, reason, offending)
        return AccessDenied(
            f"Access denied - {reason}: {offending} not in allowed directories [{allowed_str}]"
        )

    def check(self, requested_path: str) -> str:
        """Synchronous validation; returns the path to use for I/O."""
        absolute = normalize_path(requested_path)
        if not self._contained(absolute):
            raise self._deny(requested_path, absolute, "path outside allowed directories")

        target = real_path(absolute)
        if isinstance(target, Resolved):
            resolved = os.path.normpath(target.path)
            if not self._contained(resolved):
                raise self._deny(requested_path, resolved, "symlink target outside allowed directories")
            return resolved

        # Target does not exist yet: its parent decides.
        if os.path.islink(absolute):
            # Dangling symlink; writing through it would create the target.
            dangling = os.path.normpath(os.path.realpath(absolute))
            if not self._contained(dangling):
                raise self._deny(requested_path, dangling, "symlink target outside allowed directories")

        parent = real_path(os.path.dirname(absolute))
        if isinstance(parent, NotFound):
            raise ParentNotFound(f"Parent directory does not exist: {parent.path}")
        parent_resolved = os.path.normpath(parent.path)
        if not self._contained(parent_resolved):
            raise self._deny(requested_path, parent_resolved, "parent directory outside allowed directories")
        return absolute

    async def validate(self, requested_path: str) -> str:
        """Validate without blocking the event loop on stat/realpath."""
        return await asyncio.to_thread(self.check, requested_path)


def _check_root(raw_root: str) -> str:
    if not raw_root:
        raise StartupDirectoryInvalid("Allowed directory must not be empty.")
    absolute = normalize_path(raw_root)
    try:
        stats = os.stat(absolute)
    except OSError as exc:
        raise StartupDirectoryInvalid(f"Error accessing directory {absolute}: {exc}") from exc
    if not stat.S_ISDIR(stats.st_mode):
        raise StartupDirectoryInvalid(f"Error: {absolute} is not a directory")
    return os.path.normpath(os.path.realpath(absolute))


async def validate_allowed_roots(raw_roots: Sequence[str]) -> tuple[str, ...]:
    """Turn CLI arguments into canonical roots, checking each one concurrently."""
    if not raw_roots:
        raise StartupDirectoryInvalid("At least one allowed directory is required.")
    checked = await asyncio.gather(*(asyncio.to_thread(_check_root, root) for root in raw_roots))
    roots: list[str] = []
    for root in checked:
        if root not in roots:
            roots.append(root)
    return tuple(roots)
