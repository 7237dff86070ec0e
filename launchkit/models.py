"""Pydantic v2 models for the project generation engine.

Defines the catalog records (features and their file, schema, env and
package contributions), the order/license records supplied by the host, the
resolver's output and the in-memory virtual file tree that the assembler
builds.  Catalog and order JSON use camelCase keys; every model accepts
either the camelCase alias or the snake_case field name.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_core import core_schema


class _CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Feature catalog records
# ---------------------------------------------------------------------------

class ModuleRef(_CamelModel):
    """The module a feature belongs to; ``category`` groups the README."""
    slug: str = Field(..., description="Module slug, e.g. 'payments'")
    name: str = Field(default="", description="Human-readable module name")
    category: str = Field(default="general", description="Documentation category, e.g. 'billing'")


class FileMapping(_CamelModel):
    """Where a feature's file payload lives and where it lands in the output."""
    source: str = Field(..., description="Source path (file or directory)")
    destination: str = Field(..., description="Output-relative destination path")
    transform: Literal["none", "template"] = Field(
        default="none", description="'template' renders the file with Jinja2"
    )


class SchemaMapping(_CamelModel):
    """A named Prisma fragment contributed by a feature."""
    model: str = Field(..., description="Primary model name declared by the fragment")
    source: str = Field(..., description="Path to a .prisma file or the fragment text itself")


class EnvVarSpec(_CamelModel):
    """An environment variable a feature needs at runtime."""
    key: str = Field(..., description="Variable name, e.g. 'STRIPE_SECRET_KEY'")
    description: str = Field(default="", description="What the variable configures")
    required: bool = Field(default=False, description="Whether the app refuses to start without it")
    default: Optional[str] = Field(default=None, description="Default value, if any")


class PackageSpec(_CamelModel):
    """An npm package required by a feature."""
    name: str = Field(..., description="Package name, e.g. '@prisma/client'")
    version: str = Field(..., description="Semver range, exact version or URL")
    dev: bool = Field(default=False, description="Whether it belongs in devDependencies")
    platform: Literal["backend", "web", "all"] = Field(
        default="backend", description="Which generated manifest receives the package"
    )


class FeatureSpec(_CamelModel):
    """A catalog entry.  Immutable for the duration of a resolution run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    slug: str = Field(..., description="Unique feature key, e.g. 'auth.social'")
    name: str = Field(default="", description="Display name")
    description: str = Field(default="", description="One-line description for the README")
    module: ModuleRef = Field(..., description="Owning module")
    requires: list[str] = Field(default_factory=list, description="Direct dependency slugs")
    file_mappings: Optional[list[FileMapping]] = None
    schema_mappings: Optional[list[SchemaMapping]] = None
    env_vars: Optional[list[EnvVarSpec]] = None
    npm_packages: Optional[list[PackageSpec]] = None
    npm_scripts: Optional[dict[str, str]] = None
    is_active: bool = Field(default=True, description="Inactive features are invisible to lookups")

    @field_validator("requires", mode="before")
    @classmethod
    def _dedupe_requires(cls, value: Iterable[str] | None) -> list[str]:
        if value is None:
            return []
        return list(dict.fromkeys(value))

    @property
    def display_name(self) -> str:
        return self.name or self.slug


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class TemplateRef(_CamelModel):
    """A named bundle of pre-selected features."""
    name: str
    slug: str
    included_features: list[str] = Field(default_factory=list)


class LicenseRef(_CamelModel):
    """License record attached to a paid order."""
    id: str
    license_key: str
    download_token: str = ""
    download_count: int = 0
    max_downloads: int = 0
    status: str = "active"
    expires_at: Optional[datetime] = None


class OrderDetails(_CamelModel):
    """Everything the generator needs to know about a purchase."""
    id: str
    order_number: str
    tier: str = Field(..., description="Pricing tier, e.g. 'starter', 'pro', 'enterprise'")
    selected_features: list[str] = Field(default_factory=list)
    customer_email: str
    customer_name: Optional[str] = None
    total: float = 0.0
    template: Optional[TemplateRef] = None
    license: Optional[LicenseRef] = None

    @property
    def template_features(self) -> list[str]:
        return list(self.template.included_features) if self.template else []


# ---------------------------------------------------------------------------
# Resolution output
# ---------------------------------------------------------------------------

class OrderedSlugSet:
    """Insertion-ordered set of feature slugs.

    Selected features are added before template features, which are added
    before transitively required features.  Override and documentation
    ordering downstream depends on that order, so it is kept explicit here
    rather than left to list append order.
    """

    def __init__(self, slugs: Iterable[str] = ()) -> None:
        self._items: dict[str, None] = {}
        self.extend(slugs)

    def add(self, slug: str) -> bool:
        """Add *slug*; return ``True`` if it was not already present."""
        if slug in self._items:
            return False
        self._items[slug] = None
        return True

    def extend(self, slugs: Iterable[str]) -> None:
        for slug in slugs:
            self.add(slug)

    def as_list(self) -> list[str]:
        return list(self._items)

    def __contains__(self, slug: object) -> bool:
        return slug in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"OrderedSlugSet({self.as_list()!r})"


class ResolvedFeatureSet(BaseModel):
    """Transitive closure of an order's feature selection."""

    all_feature_slugs: list[str] = Field(default_factory=list)
    features: list[FeatureSpec] = Field(default_factory=list)
    dependency_tree: dict[str, list[str]] = Field(default_factory=dict)
    cycles: list[list[str]] = Field(default_factory=list)

    def feature(self, slug: str) -> FeatureSpec | None:
        for feature in self.features:
            if feature.slug == slug:
                return feature
        return None

    def direct_requires(self, slug: str) -> list[str]:
        return list(self.dependency_tree.get(slug, []))


# ---------------------------------------------------------------------------
# Virtual file tree
# ---------------------------------------------------------------------------

class VirtualFileTree(Mapping[str, bytes]):
    """Read-only mapping of output-relative POSIX paths to file contents.

    Trees are never mutated; ``with_files`` returns a new tree.
    """

    def __init__(self, files: Mapping[str, bytes] | None = None) -> None:
        self._files = MappingProxyType(dict(sorted((files or {}).items())))

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.is_instance_schema(cls)

    def __getitem__(self, path: str) -> bytes:
        return self._files[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"VirtualFileTree({len(self)} files)"

    def paths(self) -> list[str]:
        return list(self._files)

    def read_text(self, path: str) -> str:
        return self._files[path].decode("utf-8")

    def with_files(self, files: Mapping[str, bytes | str]) -> "VirtualFileTree":
        """Return a new tree with *files* added (later values win)."""
        merged = dict(self._files)
        for path, content in files.items():
            merged[path] = content.encode("utf-8") if isinstance(content, str) else content
        return VirtualFileTree(merged)

    def prefixed(self, prefix: str) -> "VirtualFileTree":
        """Return a new tree with every path placed under *prefix*."""
        prefix = prefix.strip("/")
        return VirtualFileTree({f"{prefix}/{path}": data for path, data in self._files.items()})

    def write_to(self, directory: str | Path) -> list[Path]:
        """Materialise the tree under *directory* and return the written paths."""
        root = Path(directory)
        written: list[Path] = []
        for path, data in self._files.items():
            target = root / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
            written.append(target)
        return written
