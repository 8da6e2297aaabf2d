"""MCP tool handlers. Every handler returns text; failures come back as ``Error: ...``."""

import json
import logging
import os
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional

import httpx
from pydantic import BaseModel

from .api import Network, PinataClient, PinataError
from .local_files import LocalFiles, is_text_mime
from .security import PathGuard, SandboxViolation
from .uris import coerce_local_path

logger = logging.getLogger(__name__)

HANDLED_ERRORS = (SandboxViolation, PinataError, httpx.HTTPError, OSError, ValueError)


class DataEndpoints(BaseModel):
    pinList: Optional[bool] = None
    userPinnedDataTotal: Optional[bool] = None


class PinningEndpoints(BaseModel):
    hashMetadata: Optional[bool] = None
    hashPinPolicy: Optional[bool] = None
    pinByHash: Optional[bool] = None
    pinFileToIPFS: Optional[bool] = None
    pinJSONToIPFS: Optional[bool] = None
    pinJobs: Optional[bool] = None
    unpin: Optional[bool] = None
    userPinPolicy: Optional[bool] = None


class Endpoints(BaseModel):
    data: Optional[DataEndpoints] = None
    pinning: Optional[PinningEndpoints] = None


class KeyPermissions(BaseModel):
    admin: Optional[bool] = None
    endpoints: Optional[Endpoints] = None


def as_text(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _format_error(err: Exception) -> str:
    return f"Error: {err}"


class PinataTools:
    """Tool handlers bound to one API client and one sandbox."""

    def __init__(self, client: PinataClient, guard: PathGuard, files: Optional[LocalFiles] = None) -> None:
        self.client = client
        self.guard = guard
        self.files = files or LocalFiles(guard)

    async def _call(self, tool: str, call: Awaitable[Any]) -> str:
        try:
            data = await call
        except HANDLED_ERRORS as exc:
            logger.warning("%s failed: %s", tool, exc)
            return _format_error(exc)
        return as_text(data)

    def handlers(self) -> List[Callable[..., Awaitable[str]]]:
        return [
            self.search_files,
            self.get_file_by_id,
            self.update_file,
            self.delete_file,
            self.create_private_download_link,
            self.create_link,
            self.fetch_from_gateway,
            self.upload_file,
            self.list_groups,
            self.create_group,
            self.get_group,
            self.update_group,
            self.delete_group,
            self.add_file_to_group,
            self.remove_file_from_group,
            self.list_api_keys,
            self.create_api_key,
            self.revoke_api_key,
            self.get_swap_history,
            self.add_swap,
            self.remove_swap,
            self.get_signature,
            self.add_signature,
            self.remove_signature,
            self.vectorize_file,
            self.query_vectors,
            self.list_allowed_directories,
        ]

    # files

    async def search_files(
        self,
        network: Network = "public",
        name: Optional[str] = None,
        cid: Optional[str] = None,
        mime_type: Optional[str] = None,
        limit: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> str:
        """Search files by name, CID or MIME type."""
        return await self._call(
            "search_files",
            self.client.search_files(network, name, cid, mime_type, limit, page_token),
        )

    async def get_file_by_id(self, id: str, network: Network = "public") -> str:
        """Get a file's metadata by its Pinata id."""
        return await self._call("get_file_by_id", self.client.get_file(network, id))

    async def update_file(
        self,
        id: str,
        network: Network = "public",
        name: Optional[str] = None,
        keyvalues: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Rename a file and/or replace its key-value metadata."""
        return await self._call("update_file", self.client.update_file(network, id, name, keyvalues))

    async def delete_file(self, id: str, network: Network = "public") -> str:
        """Delete a file by id."""
        return await self._call("delete_file", self.client.delete_file(network, id))

    async def create_private_download_link(
        self,
        url: str,
        expires: int,
        date: Optional[int] = None,
        method: Literal["GET"] = "GET",
    ) -> str:
        """Create a time-limited download link for a private gateway URL (expires in seconds)."""
        return await self._call(
            "create_private_download_link",
            self.client.create_private_download_link(url, expires, date, method),
        )

    async def create_link(self, cid: str, network: Network = "public", expires: int = 600) -> str:
        """Build a gateway link for a CID; private links expire after `expires` seconds."""
        try:
            link = await self.client.create_link(cid, network, expires)
        except HANDLED_ERRORS as exc:
            logger.warning("create_link failed: %s", exc)
            return _format_error(exc)
        return link

    async def fetch_from_gateway(
        self,
        cid: str,
        network: Network = "public",
        save_path: Optional[str] = None,
    ) -> str:
        """
        Fetch content by CID from the gateway.

        With `save_path` the content is written to that local path (inside the
        allowed directories); otherwise text is returned inline.
        """
        try:
            if save_path:
                # Reject a bad destination before downloading anything.
                await self.guard.validate(coerce_local_path(save_path))
            content, content_type = await self.client.fetch_content(cid, network)
            if save_path:
                target = await self.files.write_bytes(save_path, content)
                return f"Saved {len(content)} bytes ({content_type}) to {target}"
        except HANDLED_ERRORS as exc:
            logger.warning("fetch_from_gateway failed: %s", exc)
            return _format_error(exc)

        if is_text_mime(content_type):
            return content.decode("utf-8", errors="replace")
        return f"Binary content ({content_type}, {len(content)} bytes). Pass save_path to store it locally."

    async def upload_file(
        self,
        resource_uri: str,
        network: Network = "private",
        name: Optional[str] = None,
        group_id: Optional[str] = None,
        keyvalues: Optional[Dict[str, str]] = None,
    ) -> str:
        """Upload a local file (file:// URI or path inside the allowed directories)."""
        try:
            local = await self.files.read_bytes(resource_uri)
            filename = name or os.path.basename(local.path)
            data = await self.client.upload_file(
                local.content,
                filename,
                local.mime_type,
                network=network,
                name=name,
                group_id=group_id,
                keyvalues=keyvalues,
            )
        except HANDLED_ERRORS as exc:
            logger.warning("upload_file failed: %s", exc)
            return f"Error uploading file: {exc}"
        return f"File uploaded successfully!\n\n{as_text(data)}"

    # groups

    async def list_groups(
        self,
        network: Network = "public",
        name: Optional[str] = None,
        is_public: Optional[bool] = None,
        limit: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> str:
        """List groups, optionally filtered by name or visibility."""
        return await self._call(
            "list_groups", self.client.list_groups(network, name, is_public, limit, page_token)
        )

    async def create_group(self, name: str, network: Network = "public", is_public: Optional[bool] = None) -> str:
        """Create a group."""
        return await self._call("create_group", self.client.create_group(network, name, is_public))

    async def get_group(self, id: str, network: Network = "public") -> str:
        """Get a group by id."""
        return await self._call("get_group", self.client.get_group(network, id))

    async def update_group(
        self,
        id: str,
        network: Network = "public",
        name: Optional[str] = None,
        is_public: Optional[bool] = None,
    ) -> str:
        """Rename a group or change its visibility."""
        return await self._call("update_group", self.client.update_group(network, id, name, is_public))

    async def delete_group(self, id: str, network: Network = "public") -> str:
        """Delete a group by id."""
        return await self._call("delete_group", self.client.delete_group(network, id))

    async def add_file_to_group(self, group_id: str, file_id: str, network: Network = "public") -> str:
        """Add a file to a group."""
        return await self._call("add_file_to_group", self.client.add_file_to_group(network, group_id, file_id))

    async def remove_file_from_group(self, group_id: str, file_id: str, network: Network = "public") -> str:
        """Remove a file from a group."""
        return await self._call(
            "remove_file_from_group", self.client.remove_file_from_group(network, group_id, file_id)
        )

    # API keys

    async def list_api_keys(
        self,
        revoked: Optional[bool] = None,
        limited_use: Optional[bool] = None,
        exhausted: Optional[bool] = None,
        name: Optional[str] = None,
        offset: Optional[int] = None,
    ) -> str:
        """List API keys."""
        return await self._call(
            "list_api_keys", self.client.list_api_keys(revoked, limited_use, exhausted, name, offset)
        )

    async def create_api_key(
        self,
        key_name: str,
        permissions: KeyPermissions,
        max_uses: Optional[int] = None,
    ) -> str:
        """Create an API key with admin or per-endpoint permissions."""
        return await self._call(
            "create_api_key",
            self.client.create_api_key(key_name, permissions.model_dump(exclude_none=True), max_uses),
        )

    async def revoke_api_key(self, key: str) -> str:
        """Revoke an API key."""
        return await self._call("revoke_api_key", self.client.revoke_api_key(key))

    # swaps

    async def get_swap_history(self, cid: str, domain: str, network: Network = "public") -> str:
        """Show the CID swap history for a gateway domain."""
        return await self._call("get_swap_history", self.client.get_swap_history(network, cid, domain))

    async def add_swap(self, cid: str, swap_cid: str, network: Network = "public") -> str:
        """Serve `swap_cid` whenever `cid` is requested."""
        return await self._call("add_swap", self.client.add_swap(network, cid, swap_cid))

    async def remove_swap(self, cid: str, network: Network = "public") -> str:
        """Remove the swap registered for a CID."""
        return await self._call("remove_swap", self.client.remove_swap(network, cid))

    # signatures

    async def get_signature(self, cid: str, network: Network = "public") -> str:
        """Get the signature attached to a CID."""
        return await self._call("get_signature", self.client.get_signature(network, cid))

    async def add_signature(self, cid: str, signature: str, address: str, network: Network = "public") -> str:
        """Attach a signature made by `address` to a CID."""
        return await self._call("add_signature", self.client.add_signature(network, cid, signature, address))

    async def remove_signature(self, cid: str, network: Network = "public") -> str:
        """Remove the signature attached to a CID."""
        return await self._call("remove_signature", self.client.remove_signature(network, cid))

    # vectors

    async def vectorize_file(self, file_id: str) -> str:
        """Generate vector embeddings for a file."""
        return await self._call("vectorize_file", self.client.vectorize_file(file_id))

    async def query_vectors(self, group_id: str, text: str) -> str:
        """Semantic search over the vectorized files of a group."""
        return await self._call("query_vectors", self.client.query_vectors(group_id, text))

    # filesystem

    async def list_allowed_directories(self) -> str:
        """List the local directories this server may read from and write to."""
        return "Allowed directories:\n" + "\n".join(self.guard.roots)
