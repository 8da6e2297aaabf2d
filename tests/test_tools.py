from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import List

import httpx
import pytest

from pinata_mcp.api import PinataClient
from pinata_mcp.config import PinataConfig
from pinata_mcp.security import PathGuard
from pinata_mcp.tools import Endpoints, KeyPermissions, PinataTools, PinningEndpoints


@pytest.fixture
def root(tmp_path: Path) -> Path:
    root = tmp_path.resolve() / "workspace"
    root.mkdir()
    (root / "notes.txt").write_text("hello pinata", encoding="utf-8")
    return root


def make_tools(root: Path, handler, jwt: str = "test-jwt") -> PinataTools:
    client = PinataClient(
        PinataConfig(jwt=jwt, gateway_url="example.mypinata.cloud"),
        transport=httpx.MockTransport(handler),
    )
    return PinataTools(client, PathGuard([str(root)]))


def test_upload_reads_file_inside_sandbox(root: Path) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": {"cid": "bafy"}})

    tools = make_tools(root, handler)
    text = asyncio.run(tools.upload_file(f"file://{root}/notes.txt", name="renamed.txt"))

    assert text.startswith("File uploaded successfully!")
    assert '"cid": "bafy"' in text
    body = seen[0].content
    assert b'filename="renamed.txt"' in body
    assert b"hello pinata" in body
    assert b'name="network"\r\n\r\nprivate' in body


def test_upload_outside_sandbox_reported_not_sent(root: Path, tmp_path: Path) -> None:
    seen: List[httpx.Request] = []
    outside = tmp_path / "secret.txt"
    outside.write_text("secret", encoding="utf-8")

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    tools = make_tools(root, handler)
    text = asyncio.run(tools.upload_file(str(outside)))

    assert text.startswith("Error uploading file: Access denied")
    assert seen == []


def test_upload_missing_file_reported(root: Path) -> None:
    tools = make_tools(root, lambda request: httpx.Response(200, json={}))
    text = asyncio.run(tools.upload_file(str(root / "absent.txt")))
    assert text.startswith("Error uploading file: File not found")


def test_fetch_saves_to_new_file_in_sandbox(root: Path) -> None:
    tools = make_tools(
        root, lambda request: httpx.Response(200, content=b"\x00\x01\x02", headers={"content-type": "image/png"})
    )

    text = asyncio.run(tools.fetch_from_gateway("bafy", save_path=str(root / "image.png")))

    assert text == f"Saved 3 bytes (image/png) to {root / 'image.png'}"
    assert (root / "image.png").read_bytes() == b"\x00\x01\x02"


def test_fetch_rejects_destination_before_download(root: Path) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"data")

    tools = make_tools(root, handler)
    text = asyncio.run(tools.fetch_from_gateway("bafy", save_path=str(root / "missing" / "out.bin")))

    assert text.startswith("Error: Parent directory does not exist")
    assert seen == []


def test_fetch_returns_text_inline(root: Path) -> None:
    tools = make_tools(
        root, lambda request: httpx.Response(200, content=b"plain words", headers={"content-type": "text/plain"})
    )
    assert asyncio.run(tools.fetch_from_gateway("bafy")) == "plain words"


def test_fetch_summarises_binary(root: Path) -> None:
    tools = make_tools(
        root,
        lambda request: httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"}),
    )
    text = asyncio.run(tools.fetch_from_gateway("bafy"))
    assert text.startswith("Binary content (image/png, 4 bytes)")


def test_api_failure_becomes_error_text(root: Path) -> None:
    tools = make_tools(root, lambda request: httpx.Response(500))
    text = asyncio.run(tools.search_files(name="x"))
    assert text == "Error: Failed to search files: 500 Internal Server Error"


def test_missing_jwt_is_a_per_call_error(root: Path) -> None:
    tools = make_tools(root, lambda request: httpx.Response(200, json={}), jwt="")
    text = asyncio.run(tools.list_groups())
    assert text == "Error: PINATA_JWT environment variable is not set"


def test_success_is_pretty_json(root: Path) -> None:
    tools = make_tools(root, lambda request: httpx.Response(200, json={"data": {"id": "g1"}}))
    text = asyncio.run(tools.get_group("g1"))
    assert json.loads(text) == {"data": {"id": "g1"}}
    assert "\n  " in text


def test_create_api_key_drops_unset_permissions(root: Path) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"JWT": "new"})

    tools = make_tools(root, handler)
    permissions = KeyPermissions(endpoints=Endpoints(pinning=PinningEndpoints(pinFileToIPFS=True)))
    asyncio.run(tools.create_api_key("uploader", permissions))

    assert json.loads(seen[0].content) == {
        "keyName": "uploader",
        "permissions": {"endpoints": {"pinning": {"pinFileToIPFS": True}}},
    }


def test_create_link_public(root: Path) -> None:
    tools = make_tools(root, lambda request: httpx.Response(200, json={}))
    assert asyncio.run(tools.create_link("bafy")) == "https://example.mypinata.cloud/ipfs/bafy"


def test_list_allowed_directories(root: Path) -> None:
    tools = make_tools(root, lambda request: httpx.Response(200, json={}))
    assert asyncio.run(tools.list_allowed_directories()) == f"Allowed directories:\n{root}"
