import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple, Union
from urllib.error import HTTPError, URLError

from pydantic import ValidationError

from pinas.packages.builtin import get_builtin_catalog, get_builtin_manifest
from pinas.packages.errors import (
    FetchError,
    ParseError,
    ResolutionError,
    UnknownPackage,
)
from pinas.packages.fetch import fetch_bytes
from pinas.packages.models import PackageManifest

logger = logging.getLogger(__name__)


def parse_manifest(data: Union[bytes, str, Dict[str, Any]]) -> PackageManifest:
    """Parse a manifest from raw JSON or an already decoded mapping."""
    try:
        if isinstance(data, dict):
            return PackageManifest.model_validate(data)
        return PackageManifest.model_validate_json(data)
    except ValidationError as e:
        raise ParseError(f"Invalid manifest: {e}") from e


class CatalogClient:
    def __init__(self, timeout_seconds: int = 15):
        self.timeout_seconds = timeout_seconds

    def fetch_json(self, url: str) -> bytes:
        try:
            return fetch_bytes(url, self.timeout_seconds, accept="application/json")
        except HTTPError as e:
            raise FetchError(f"Failed to fetch {url}: HTTP {e.code}") from e
        except URLError as e:
            raise FetchError(f"Failed to fetch {url}: {e.reason}") from e
        except OSError as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e

    def fetch_catalog(self, index_url: str) -> Dict[str, Any]:
        payload = self.fetch_json(index_url)
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise ParseError(f"Catalog is not valid JSON: {e}") from e
        self._validate_catalog_payload(data)
        return data

    def fetch_manifest(self, url: str) -> PackageManifest:
        return parse_manifest(self.fetch_json(url))

    def _validate_catalog_payload(self, data: Any):
        if not isinstance(data, dict):
            raise ParseError("Catalog payload must be a JSON object")

        apps = data.get("apps")
        if not isinstance(apps, list):
            raise ParseError("Catalog payload 'apps' must be an array")

        for index, app in enumerate(apps):
            if not isinstance(app, dict) or not app.get("id"):
                raise ParseError(f"Catalog app at index {index} must be an object with an 'id'")


class ManifestResolver:
    """Turns an inline manifest, a manifest URL or a package id into a manifest."""

    def __init__(self, catalog_url: str, timeout_seconds: int = 15, client=None):
        self.catalog_url = catalog_url
        self.client = client or CatalogClient(timeout_seconds=timeout_seconds)

    async def resolve(
        self,
        manifest: Optional[Union[PackageManifest, Dict[str, Any]]] = None,
        manifest_url: Optional[str] = None,
        package_id: Optional[str] = None,
    ) -> Tuple[PackageManifest, Optional[str]]:
        """Return the manifest and the URL it came from, if any."""
        if manifest is not None:
            if not isinstance(manifest, PackageManifest):
                manifest = parse_manifest(manifest)
            return manifest, manifest_url
        if manifest_url:
            return await self.fetch_manifest(manifest_url), manifest_url
        if package_id:
            return await self.resolve_package(package_id)
        raise ValueError("Either package_id, manifest, or manifest_url is required")

    async def fetch_manifest(self, url: str) -> PackageManifest:
        return await asyncio.to_thread(self.client.fetch_manifest, url)

    async def fetch_catalog(self) -> Dict[str, Any]:
        logger.debug(f"Fetching catalog from: {self.catalog_url}")
        return await asyncio.to_thread(self.client.fetch_catalog, self.catalog_url)

    async def get_catalog(self) -> Dict[str, Any]:
        """Remote catalog, or the built-in one when the remote is unusable."""
        try:
            catalog = await self.fetch_catalog()
        except ResolutionError as e:
            logger.warning(f"Failed to fetch remote catalog: {e}")
            logger.info("Using built-in catalog (remote unavailable)")
            return get_builtin_catalog()
        logger.info(f"Loaded remote catalog with {len(catalog['apps'])} apps")
        return catalog

    async def resolve_package(self, package_id: str) -> Tuple[PackageManifest, Optional[str]]:
        failure: Optional[ResolutionError] = None
        try:
            catalog = await self.fetch_catalog()
        except ResolutionError as e:
            logger.warning(f"Catalog unavailable while resolving {package_id}: {e}")
            catalog = {"apps": []}

        for entry in catalog["apps"]:
            manifest_url = entry.get("manifest")
            if entry.get("id") != package_id or not isinstance(manifest_url, str):
                continue
            try:
                return await self.fetch_manifest(manifest_url), manifest_url
            except ResolutionError as e:
                logger.warning(f"Failed to fetch manifest for {package_id}: {e}")
                failure = e
            break

        builtin = get_builtin_manifest(package_id)
        if builtin is not None:
            logger.info(f"Using built-in manifest for {package_id}")
            return builtin, None
        if failure is not None:
            raise failure
        raise UnknownPackage(package_id)
