"""Filesystem access for tools and resources, always behind PathGuard."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from .security import PathGuard, SandboxViolation
from .uris import coerce_local_path

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
TEXT_MIME_TYPES = {"application/json", "application/javascript", "application/xml"}


def guess_mime_type(path: str) -> str:
    mime_type, _ = mimetypes.guess_type(path)
    return mime_type or DEFAULT_MIME_TYPE


def is_text_mime(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in TEXT_MIME_TYPES


@dataclass(slots=True)
class LocalFile:
    path: str
    mime_type: str
    content: Union[str, bytes]

    @property
    def is_text(self) -> bool:
        return isinstance(self.content, str)


class LocalFiles:
    """Reads and writes under the allowed roots of a ``PathGuard``."""

    def __init__(self, guard: PathGuard) -> None:
        self.guard = guard

    async def _existing_file(self, location: str) -> str:
        target = await self.guard.validate(coerce_local_path(location))
        if not await asyncio.to_thread(os.path.exists, target):
            raise FileNotFoundError(f"File not found: {target}")
        if not await asyncio.to_thread(os.path.isfile, target):
            raise IsADirectoryError(f"Not a file: {target}")
        return target

    async def read(self, location: str) -> LocalFile:
        """Read a file as text when its MIME type is textual, bytes otherwise."""
        target = await self._existing_file(location)
        mime_type = guess_mime_type(target)
        if is_text_mime(mime_type):
            content: Union[str, bytes] = await asyncio.to_thread(
                Path(target).read_text, encoding="utf-8", errors="replace"
            )
        else:
            content = await asyncio.to_thread(Path(target).read_bytes)
        return LocalFile(path=target, mime_type=mime_type, content=content)

    async def read_bytes(self, location: str) -> LocalFile:
        target = await self._existing_file(location)
        content = await asyncio.to_thread(Path(target).read_bytes)
        return LocalFile(path=target, mime_type=guess_mime_type(target), content=content)

    async def write_bytes(self, location: str, content: bytes) -> str:
        """Write ``content`` to a validated destination; the parent must already exist."""
        target = await self.guard.validate(coerce_local_path(location))
        if await asyncio.to_thread(os.path.isdir, target):
            raise IsADirectoryError(f"Cannot write over a directory: {target}")
        await asyncio.to_thread(Path(target).write_bytes, content)
        logger.info("Wrote %d bytes to %s", len(content), target)
        return target

    async def list_root_files(self) -> List[str]:
        """Regular files directly inside each allowed root."""
        found: List[str] = []
        for root in self.guard.roots:
            entries = await asyncio.to_thread(_scan_files, root)
            for entry in entries:
                try:
                    found.append(await self.guard.validate(entry))
                except SandboxViolation:
                    # Symlink pointing out of the sandbox.
                    continue
        return found


def _scan_files(root: str) -> List[str]:
    try:
        with os.scandir(root) as it:
            return sorted(entry.path for entry in it if entry.is_file())
    except OSError as exc:
        logger.warning("Cannot list %s: %s", root, exc)
        return []
