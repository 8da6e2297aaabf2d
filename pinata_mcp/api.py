"""Async client for the Pinata v3 REST API."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Literal, Optional

import httpx

from .config import PinataConfig

logger = logging.getLogger(__name__)

Network = Literal["public", "private"]
NETWORKS = ("public", "private")


class PinataError(RuntimeError):
    """Base error for everything the remote API side can go wrong with."""


class MissingCredentials(PinataError):
    """A required environment variable (PINATA_JWT, GATEWAY_URL) is unset."""


class PinataAPIError(PinataError):
    def __init__(self, action: str, status_code: int, reason: str, body: str = "") -> None:
        self.action = action
        self.status_code = status_code
        self.reason = reason
        self.body = body
        message = f"Failed to {action}: {status_code} {reason}"
        if body:
            message = f"{message}\n{body}"
        super().__init__(message)


def _network(network: str) -> str:
    if network not in NETWORKS:
        raise ValueError(f"network must be one of {', '.join(NETWORKS)}, got {network!r}")
    return network


def _query(**params: Any) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


class PinataClient:
    """
    Thin wrapper around the Pinata endpoints.

    Each call opens its own ``httpx.AsyncClient``; ``transport`` lets tests
    swap the network for ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: PinataConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self._transport = transport

    def _auth_headers(self) -> Dict[str, str]:
        if not self.config.jwt:
            raise MissingCredentials("PINATA_JWT environment variable is not set")
        return {"Authorization": f"Bearer {self.config.jwt}"}

    def _gateway(self) -> str:
        if not self.config.gateway_url:
            raise MissingCredentials("GATEWAY_URL environment variable is not set")
        return self.config.gateway_url

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.config.request_timeout)
        if self._transport is not None:
            return httpx.AsyncClient(transport=self._transport, timeout=timeout)
        return httpx.AsyncClient(timeout=timeout)

    async def _request(
        self,
        method: str,
        url: str,
        action: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        include_body: bool = False,
    ) -> Any:
        headers = self._auth_headers()
        if files is None:
            headers["Content-Type"] = "application/json"
        logger.debug("%s %s", method, url)

        async with self._client() as client:
            response = await client.request(
                method,
                url,
                params=params or None,
                json=payload,
                files=files,
                data=data,
                headers=headers,
            )
        if response.is_error:
            raise PinataAPIError(
                action,
                response.status_code,
                response.reason_phrase,
                response.text if include_body else "",
            )
        if not response.content:
            return {}
        return response.json()

    def _api(self, *parts: str) -> str:
        return "/".join((self.config.api_url, *parts))

    def _uploads(self, *parts: str) -> str:
        return "/".join((self.config.uploads_url, *parts))

    # files

    async def search_files(
        self,
        network: str = "public",
        name: Optional[str] = None,
        cid: Optional[str] = None,
        mime_type: Optional[str] = None,
        limit: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> Any:
        params = _query(
            name=name or None,
            cid=cid or None,
            mimeType=mime_type or None,
            limit=limit or None,
            pageToken=page_token or None,
        )
        return await self._request("GET", self._api("files", _network(network)), "search files", params=params)

    async def get_file(self, network: str, file_id: str) -> Any:
        return await self._request("GET", self._api("files", _network(network), file_id), "get file")

    async def update_file(
        self,
        network: str,
        file_id: str,
        name: Optional[str] = None,
        keyvalues: Optional[Dict[str, Any]] = None,
    ) -> Any:
        payload: Dict[str, Any] = {}
        if name:
            payload["name"] = name
        if keyvalues:
            payload["keyvalues"] = keyvalues
        return await self._request(
            "PUT", self._api("files", _network(network), file_id), "update file", payload=payload
        )

    async def delete_file(self, network: str, file_id: str) -> Any:
        return await self._request("DELETE", self._api("files", _network(network), file_id), "delete file")

    async def create_private_download_link(
        self,
        url: str,
        expires: int,
        date: Optional[int] = None,
        method: str = "GET",
    ) -> Any:
        payload = {
            "url": url,
            "expires": expires,
            "date": int(time.time()) if date is None else date,
            "method": method,
        }
        return await self._request(
            "POST", self._api("files", "private", "download_link"), "create download link", payload=payload
        )

    async def upload_file(
        self,
        content: bytes,
        filename: str,
        mime_type: str,
        network: str = "private",
        name: Optional[str] = None,
        group_id: Optional[str] = None,
        keyvalues: Optional[Dict[str, str]] = None,
    ) -> Any:
        data: Dict[str, Any] = {"network": _network(network)}
        if name:
            data["name"] = name
        if group_id:
            data["group_id"] = group_id
        if keyvalues:
            data["keyvalues"] = json.dumps(keyvalues)
        files = {"file": (filename, content, mime_type)}
        return await self._request(
            "POST", self._uploads("files"), "upload file", files=files, data=data, include_body=True
        )

    # groups

    async def list_groups(
        self,
        network: str = "public",
        name: Optional[str] = None,
        is_public: Optional[bool] = None,
        limit: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> Any:
        params = _query(
            name=name or None,
            isPublic=is_public,
            limit=limit or None,
            pageToken=page_token or None,
        )
        return await self._request("GET", self._api("groups", _network(network)), "list groups", params=params)

    async def create_group(self, network: str, name: str, is_public: Optional[bool] = None) -> Any:
        payload: Dict[str, Any] = {"name": name}
        if is_public is not None:
            payload["is_public"] = is_public
        return await self._request("POST", self._api("groups", _network(network)), "create group", payload=payload)

    async def get_group(self, network: str, group_id: str) -> Any:
        return await self._request("GET", self._api("groups", _network(network), group_id), "get group")

    async def update_group(
        self,
        network: str,
        group_id: str,
        name: Optional[str] = None,
        is_public: Optional[bool] = None,
    ) -> Any:
        payload: Dict[str, Any] = {}
        if name:
            payload["name"] = name
        if is_public is not None:
            payload["is_public"] = is_public
        return await self._request(
            "PUT", self._api("groups", _network(network), group_id), "update group", payload=payload
        )

    async def delete_group(self, network: str, group_id: str) -> Any:
        return await self._request("DELETE", self._api("groups", _network(network), group_id), "delete group")

    async def add_file_to_group(self, network: str, group_id: str, file_id: str) -> Any:
        url = self._api("groups", _network(network), group_id, "ids", file_id)
        return await self._request("PUT", url, "add file to group")

    async def remove_file_from_group(self, network: str, group_id: str, file_id: str) -> Any:
        url = self._api("groups", _network(network), group_id, "ids", file_id)
        return await self._request("DELETE", url, "remove file from group")

    # API keys

    async def list_api_keys(
        self,
        revoked: Optional[bool] = None,
        limited_use: Optional[bool] = None,
        exhausted: Optional[bool] = None,
        name: Optional[str] = None,
        offset: Optional[int] = None,
    ) -> Any:
        params = _query(
            revoked=revoked,
            limitedUse=limited_use,
            exhausted=exhausted,
            name=name or None,
            offset=offset or None,
        )
        return await self._request("GET", self._api("pinata", "keys"), "list API keys", params=params)

    async def create_api_key(
        self,
        key_name: str,
        permissions: Dict[str, Any],
        max_uses: Optional[int] = None,
    ) -> Any:
        payload: Dict[str, Any] = {"keyName": key_name, "permissions": permissions}
        if max_uses is not None:
            payload["maxUses"] = max_uses
        return await self._request("POST", self._api("pinata", "keys"), "create API key", payload=payload)

    async def revoke_api_key(self, key: str) -> Any:
        return await self._request("PUT", self._api("pinata", "keys", key), "revoke API key")

    # swaps

    async def get_swap_history(self, network: str, cid: str, domain: str) -> Any:
        url = self._api("files", _network(network), "swap", cid)
        return await self._request("GET", url, "get swap history", params={"domain": domain})

    async def add_swap(self, network: str, cid: str, swap_cid: str) -> Any:
        url = self._api("files", _network(network), "swap", cid)
        return await self._request("PUT", url, "add swap", payload={"swap_cid": swap_cid})

    async def remove_swap(self, network: str, cid: str) -> Any:
        url = self._api("files", _network(network), "swap", cid)
        return await self._request("DELETE", url, "remove swap")

    # signatures

    async def get_signature(self, network: str, cid: str) -> Any:
        url = self._api("files", _network(network), "signature", cid)
        return await self._request("GET", url, "get signature")

    async def add_signature(self, network: str, cid: str, signature: str, address: str) -> Any:
        url = self._api("files", _network(network), "signature", cid)
        payload = {"signature": signature, "address": address}
        return await self._request("POST", url, "add signature", payload=payload)

    async def remove_signature(self, network: str, cid: str) -> Any:
        url = self._api("files", _network(network), "signature", cid)
        return await self._request("DELETE", url, "remove signature")

    # vectors

    async def vectorize_file(self, file_id: str) -> Any:
        return await self._request("POST", self._uploads("vectorize", "files", file_id), "vectorize file")

    async def query_vectors(self, group_id: str, text: str) -> Any:
        url = self._uploads("vectorize", "groups", group_id, "query")
        return await self._request("POST", url, "query vectors", payload={"text": text})

    # gateway

    def public_gateway_url(self, cid: str) -> str:
        return f"https://{self._gateway()}/ipfs/{cid}"

    def private_gateway_url(self, cid: str) -> str:
        return f"https://{self._gateway()}/files/{cid}"

    async def create_link(self, cid: str, network: str = "public", expires: int = 600) -> str:
        """Direct link for public content, a signed time-limited one for private."""
        if _network(network) == "public":
            return self.public_gateway_url(cid)
        data = await self.create_private_download_link(self.private_gateway_url(cid), expires)
        link = data.get("data") if isinstance(data, dict) else None
        if not link:
            raise PinataError(f"Download link response missing data: {data}")
        return str(link)

    async def fetch_content(self, cid: str, network: str = "public") -> tuple[bytes, str]:
        """Download content through the gateway; returns (bytes, content type)."""
        url = await self.create_link(cid, network)
        logger.debug("GET %s", url)
        async with self._client() as client:
            response = await client.get(url, follow_redirects=True)
        if response.is_error:
            raise PinataAPIError("fetch from gateway", response.status_code, response.reason_phrase)
        content_type = response.headers.get("content-type", "application/octet-stream")
        return response.content, content_type.split(";")[0].strip()
