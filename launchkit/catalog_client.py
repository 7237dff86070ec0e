"""Feature catalog accessors.

The resolver only needs one query: *give me the records for these slugs*.
``FeatureCatalog`` describes that contract; two implementations are
provided:

* ``InMemoryCatalog`` -- dict-backed, loaded from a JSON export of the
  catalog.  Used by the CLI and the test-suite.
* ``HttpCatalog`` -- async client for the studio API
  (``GET /api/features?slugs=a,b``) built on ``httpx.AsyncClient``.

Both return *at most* the features that exist and are active; callers work
out what is missing by diffing the requested slugs against the result.

Typical usage::

    catalog = HttpCatalog("https://studio.example.com", timeout=15)
    features = await catalog.find_features({"auth.basic", "payments.stripe"})
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from launchkit.errors import CatalogError
from launchkit.models import FeatureSpec
from launchkit.utils import load_json


class FeatureCatalog(Protocol):
    """Read-only lookup of feature records by slug."""

    async def find_features(self, slugs: Iterable[str]) -> list[FeatureSpec]:
        ...


def _parse_features(payload: Any) -> list[FeatureSpec]:
    """Accept a bare list or a ``{"features": [...]}`` / ``{"data": [...]}`` envelope."""
    if isinstance(payload, dict):
        payload = payload.get("features", payload.get("data", []))
    if not isinstance(payload, list):
        raise CatalogError(f"Catalog payload must be a list of features, got {type(payload).__name__}")
    try:
        return [FeatureSpec.model_validate(item) for item in payload]
    except ValidationError as exc:
        raise CatalogError(f"Malformed feature record in catalog: {exc}") from exc


# ---------------------------------------------------------------------------
# In-memory catalog
# ---------------------------------------------------------------------------


class InMemoryCatalog:
    """Dict-backed catalog.

    Attributes:
        queries: Every batch of slugs requested so far, in call order.
    """

    def __init__(self, features: Iterable[FeatureSpec] = ()) -> None:
        self._features: dict[str, FeatureSpec] = {f.slug: f for f in features}
        self.queries: list[list[str]] = []

    @classmethod
    def from_json_file(cls, path: str | Path) -> "InMemoryCatalog":
        """Load a catalog export (a JSON list or ``{"features": [...]}``)."""
        data = load_json(path)
        return cls(_parse_features(data.get("_root", data)))

    async def find_features(self, slugs: Iterable[str]) -> list[FeatureSpec]:
        requested = sorted(set(slugs))
        self.queries.append(requested)
        found = []
        for slug in requested:
            feature = self._features.get(slug)
            if feature is not None and feature.is_active:
                found.append(feature)
        return found


# ---------------------------------------------------------------------------
# HTTP catalog
# ---------------------------------------------------------------------------


class HttpCatalog:
    """Async client for the studio's feature endpoint.

    Any transport failure, timeout, non-2xx status or malformed payload is
    raised as ``CatalogError`` so the resolver can retry the whole batch.
    """

    def __init__(self, base_url: str, timeout: int = 30) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )

    async def find_features(self, slugs: Iterable[str]) -> list[FeatureSpec]:
        requested = sorted(set(slugs))
        if not requested:
            return []

        try:
            async with self._client() as client:
                response = await client.get("/api/features", params={"slugs": ",".join(requested)})
                response.raise_for_status()
                data = response.json()
        except httpx.ConnectError as exc:
            raise CatalogError(f"Cannot connect to feature catalog at {self.base_url}") from exc
        except httpx.TimeoutException as exc:
            raise CatalogError(f"Feature catalog request timed out after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise CatalogError(
                f"Feature catalog returned HTTP {exc.response.status_code}: {exc.response.text[:500]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise CatalogError(f"Feature catalog request failed: {exc!r}") from exc
        except ValueError as exc:
            raise CatalogError(f"Feature catalog returned invalid JSON: {exc}") from exc

        wanted = set(requested)
        return [f for f in _parse_features(data) if f.slug in wanted and f.is_active]
