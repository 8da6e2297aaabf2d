from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Iterable, List, Optional, Sequence

from mcp.server.fastmcp import FastMCP
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.types import Resource, ResourceTemplate

from .api import PinataClient
from .config import PinataConfig, ServerSettings
from .local_files import LocalFiles, guess_mime_type
from .security import PREFIX_RAW, PREFIX_SEGMENT, PathGuard, StartupDirectoryInvalid, validate_allowed_roots
from .tools import PinataTools
from .uris import file_uri_to_path, path_to_file_uri

LOGGER = logging.getLogger(__name__)

SERVER_NAME = "Pinata"
FILE_TEMPLATE = "file://{path}"


class PinataServer(FastMCP):
    """FastMCP server whose resources are the files under the allowed directories."""

    def __init__(self, files: LocalFiles, name: str = SERVER_NAME) -> None:
        super().__init__(name)
        self.files = files

    async def list_resources(self) -> List[Resource]:
        resources: List[Resource] = []
        for path in await self.files.list_root_files():
            resources.append(
                Resource(
                    uri=path_to_file_uri(path),
                    name=os.path.basename(path),
                    mimeType=guess_mime_type(path),
                )
            )
        return resources

    async def list_resource_templates(self) -> List[ResourceTemplate]:
        return [
            ResourceTemplate(
                uriTemplate=FILE_TEMPLATE,
                name="Local Files",
                description="Access local files to upload to Pinata IPFS",
            )
        ]

    async def read_resource(self, uri) -> Iterable[ReadResourceContents]:
        local = await self.files.read(file_uri_to_path(str(uri)))
        return [ReadResourceContents(content=local.content, mime_type=local.mime_type)]


def create_server(
    settings: ServerSettings,
    config: PinataConfig,
    client: Optional[PinataClient] = None,
) -> PinataServer:
    guard = PathGuard(settings.allowed_roots, settings.prefix_match)
    files = LocalFiles(guard)
    tools = PinataTools(client or PinataClient(config), guard, files)

    server = PinataServer(files)
    for handler in tools.handlers():
        server.add_tool(handler)
    return server


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pinata-mcp",
        description="Pinata MCP server (stdio) with sandboxed local file access.",
    )
    parser.add_argument(
        "directories",
        nargs="*",
        help="Directory the server may read from and write to (one or more).",
    )
    parser.add_argument(
        "--prefix-match",
        choices=[PREFIX_SEGMENT, PREFIX_RAW],
        default=PREFIX_SEGMENT,
        help="'segment' compares whole path components; 'raw' is a plain string prefix test.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO).",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.directories:
        parser.print_usage(sys.stderr)
        LOGGER.error("At least one allowed directory is required.")
        sys.exit(1)

    try:
        roots = asyncio.run(validate_allowed_roots(args.directories))
        settings = ServerSettings(allowed_roots=roots, prefix_match=args.prefix_match, log_level=args.log_level)
        server = create_server(settings, PinataConfig.from_env())
    except StartupDirectoryInvalid as exc:
        LOGGER.error("%s", exc)
        sys.exit(1)
    except Exception:
        LOGGER.exception("Fatal error during startup")
        sys.exit(1)

    LOGGER.info("Pinata MCP server running on stdio")
    LOGGER.info("Allowed directories: %s", ", ".join(roots))
    server.run("stdio")


if __name__ == "__main__":
    main()
