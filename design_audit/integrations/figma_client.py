"""Figma REST API client for the design audit.

Fetches document trees and rendered component screenshots from Figma files
using Personal Access Token (PAT) authentication.

Environment:
    FIGMA_TOKEN: Figma Personal Access Token (required)

Usage:
    client = FigmaClient()
    document = await client.get_document("6kGd851qaAX4TiL44vpIrO", page_name="PC")
    images = await client.get_image_urls("6kGd851qaAX4TiL44vpIrO", ["16650:539"])
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from design_audit import settings
from design_audit.analysis.document import DesignDocument
from design_audit.analysis.locator import describe_component, find_components

logger = logging.getLogger("design_audit.integrations.figma")

FIGMA_API_BASE = "https://api.figma.com"


class FigmaClientError(Exception):
    """Raised when a Figma API call fails."""


class FigmaClient:
    """Async Figma REST API client.

    Args:
        token: Figma PAT. Falls back to the FIGMA_TOKEN config value.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        if token is None:
            from design_audit.config import FIGMA_TOKEN
            token = FIGMA_TOKEN
        self._token = token
        if not self._token:
            raise FigmaClientError(
                "Figma token not configured. Set FIGMA_TOKEN environment variable "
                "or pass token= to FigmaClient()."
            )
        self._client: Optional[httpx.AsyncClient] = None
        self._timeout = timeout if timeout is not None else settings.FIGMA_HTTP_TIMEOUT

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=FIGMA_API_BASE,
                headers={"X-FIGMA-TOKEN": self._token},
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=5, max_keepalive_connections=3),
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        """Make a GET request to the Figma API."""
        client = await self._get_client()
        try:
            resp = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise FigmaClientError(f"Figma API timeout: {path}") from e
        except httpx.TransportError as e:
            raise FigmaClientError(f"Figma API connection error: {path}") from e

        if resp.status_code == 403:
            raise FigmaClientError(
                "Figma API returned 403 Forbidden. Check that FIGMA_TOKEN is valid "
                "and has file_content:read scope."
            )
        if resp.status_code == 404:
            raise FigmaClientError(f"Figma resource not found: {path}")
        if resp.status_code == 429:
            raise FigmaClientError("Figma API rate limit exceeded. Retry later.")
        if resp.status_code != 200:
            raise FigmaClientError(
                f"Figma API error {resp.status_code}: {resp.text[:200]}"
            )

        try:
            return resp.json()
        except ValueError as e:
            raise FigmaClientError(f"Figma API returned invalid JSON: {path}") from e

    # ------------------------------------------------------------------
    # Core API methods
    # ------------------------------------------------------------------

    async def get_file(self, file_key: str) -> Dict[str, Any]:
        """Fetch the full document tree of a Figma file.

        GET /v1/files/:key
        """
        data = await self._get(f"/v1/files/{file_key}")
        logger.info(
            f"get_file: file={file_key}, name={data.get('name')!r}, "
            f"version={data.get('version')}"
        )
        return data

    async def get_document(
        self,
        file_key: str,
        page_name: Optional[str] = None,
    ) -> DesignDocument:
        """Fetch a file and wrap it as a DesignDocument.

        The page filter is applied by the locator; here it is only checked so a
        misspelt page name shows up in the logs instead of as an empty run.
        """
        data = await self.get_file(file_key)
        document = DesignDocument.from_file_response(file_key, data)
        if page_name is not None and page_name not in document.page_names():
            logger.warning(
                f"get_document: page {page_name!r} not found in file={file_key}; "
                f"available={document.page_names()}"
            )
        return document

    async def get_image_urls(
        self,
        file_key: str,
        node_ids: List[str],
        fmt: Optional[str] = None,
        scale: Optional[int] = None,
        version: Optional[str] = None,
    ) -> Dict[str, Optional[str]]:
        """Render node screenshots via Figma's image export API.

        GET /v1/images/:key?ids=...&format=png&scale=2&version=...

        Returns:
            Mapping of node id to a temporary image URL (None when Figma could
            not render the node).
        """
        if not node_ids:
            return {}

        params: Dict[str, str] = {
            "ids": ",".join(node_ids),
            "format": fmt or settings.FIGMA_IMAGE_FORMAT,
            "scale": str(scale or settings.FIGMA_IMAGE_SCALE),
        }
        if version:
            params["version"] = version

        data = await self._get(f"/v1/images/{file_key}", params=params)

        if data.get("err"):
            raise FigmaClientError(f"Figma image render error: {data['err']}")

        images = data.get("images") or {}
        logger.info(
            f"get_image_urls: file={file_key}, requested={len(node_ids)}, "
            f"rendered={sum(1 for v in images.values() if v)}"
        )
        return {node_id: images.get(node_id) for node_id in node_ids}

    # ------------------------------------------------------------------
    # High-level helpers
    # ------------------------------------------------------------------

    async def search_components(
        self,
        file_key: str,
        component_type: str,
        page_name: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Locate components of one type in a file and attach screenshot URLs."""
        document = await self.get_document(file_key, page_name)
        matches = find_components(document, component_type, page_name)
        images = await self.get_image_urls(
            file_key, [m.node_id for m in matches], version=document.version,
        )

        components = []
        for match in matches:
            details = describe_component(match)
            details["image_url"] = images.get(match.node_id)
            components.append(details)
        return components
