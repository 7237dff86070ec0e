"""File tree assembly.

Builds the generated project's ``VirtualFileTree`` from the core base tree
and each resolved feature's file mappings.  Features are overlaid in
resolution order and later files replace earlier ones at the same path; the
replacements are reported, never raised.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path, PurePosixPath
from typing import Any, Optional

from pydantic import BaseModel, Field

from launchkit.errors import FeatureSourceError, PathTraversalError
from launchkit.models import FeatureSpec, FileMapping, VirtualFileTree
from launchkit.templates import TemplateRenderer


# ---------------------------------------------------------------------------
# Inclusion policy
# ---------------------------------------------------------------------------

EXCLUDED_DIRS: frozenset[str] = frozenset({
    "node_modules",
    ".git",
    "dist",
    "build",
    ".next",
    ".turbo",
    "coverage",
    ".nyc_output",
    "_preview",
})

EXCLUDED_FILES: frozenset[str] = frozenset({
    ".DS_Store",
    "Thumbs.db",
    # Live-configurator preview components that can live outside _preview/
    "preview-banner.tsx",
    "preview-wrapper.tsx",
    "preview-context.tsx",
})

EXCLUDED_SUFFIXES: tuple[str, ...] = (".log",)

ENV_TEMPLATE_NAME = ".env.example"

CORE_OWNER = "core"


def _is_real_env_file(name: str) -> bool:
    return name != ENV_TEMPLATE_NAME and (name == ".env" or name.startswith(".env."))


def should_include_file(relative_path: str) -> bool:
    """Return ``False`` if *relative_path* must never ship in a download.

    A path is excluded when any of its components is an excluded directory
    name, or when its basename is an excluded file: a real ``.env*`` file
    (``.env.example`` is kept), OS metadata, a ``*.log`` file or a
    preview-only component.
    """
    parts = [part for part in relative_path.replace("\\", "/").split("/") if part not in ("", ".")]
    if not parts:
        return True
    if any(part in EXCLUDED_DIRS for part in parts):
        return False

    name = parts[-1]
    if name in EXCLUDED_FILES or _is_real_env_file(name):
        return False
    return not name.endswith(EXCLUDED_SUFFIXES)


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

class FileOverride(BaseModel):
    """A destination path written by more than one contributor."""
    path: str
    previous_owner: str = Field(..., description="'core' or the slug that wrote first")
    owner: str = Field(..., description="Slug whose file won")


class AssemblyResult(BaseModel):
    """The assembled tree plus the last-writer-wins replacements it took."""

    tree: VirtualFileTree
    overrides: list[FileOverride] = Field(default_factory=list)
    owners: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------

class FileAssembler:
    """Merges the core tree with ordered per-feature file overlays.

    Args:
        core_path: Root of the base project tree.
        project_root: Directory that holds ``core/`` and ``modules/``.
            Mapping sources starting with ``modules/`` or ``core/`` resolve
            against it; any other source resolves against *core_path*.
            Defaults to the parent of *core_path*.
        renderer: Used for mappings with ``transform: template``.
    """

    def __init__(
        self,
        core_path: str | Path,
        project_root: str | Path | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.core_path = Path(core_path)
        self.project_root = Path(project_root) if project_root is not None else self.core_path.parent
        self.renderer = renderer or TemplateRenderer()

    # -- Public API --------------------------------------------------------

    def assemble(
        self,
        features: Iterable[FeatureSpec],
        context: Optional[dict[str, Any]] = None,
    ) -> AssemblyResult:
        """Build the virtual tree: core first, then each feature in order.

        Raises:
            OSError: The core tree could not be read.
            PathTraversalError: A mapping escapes its allowed root.
            FeatureSourceError: A mapping source is missing or unreadable.
        """
        files: dict[str, bytes] = {}
        owners: dict[str, str] = {}
        overrides: list[FileOverride] = []

        for rel_path, path in _iter_files(self.core_path):
            files[rel_path] = path.read_bytes()
            owners[rel_path] = CORE_OWNER

        for feature in features:
            for mapping in feature.file_mappings or []:
                for dest, content in self._mapping_files(feature, mapping, context or {}):
                    previous = owners.get(dest)
                    if previous is not None and previous != feature.slug:
                        overrides.append(FileOverride(path=dest, previous_owner=previous, owner=feature.slug))
                    files[dest] = content
                    owners[dest] = feature.slug

        return AssemblyResult(tree=VirtualFileTree(files), overrides=overrides, owners=owners)

    def walk_base(self) -> VirtualFileTree:
        """Return the filtered core tree on its own."""
        return VirtualFileTree({rel: path.read_bytes() for rel, path in _iter_files(self.core_path)})

    # -- Mapping resolution ------------------------------------------------

    def resolve_source(self, source: str) -> Path:
        """Resolve a mapping source and make sure it stays in the project root."""
        normalised = source.replace("\\", "/")
        if normalised.startswith(("modules/", "core/")):
            candidate = self.project_root / normalised
        else:
            candidate = self.core_path / normalised

        resolved = candidate.resolve()
        root = self.project_root.resolve()
        if resolved != root and root not in resolved.parents:
            raise PathTraversalError(source, "fileMappings.source")
        return resolved

    def _mapping_files(
        self,
        feature: FeatureSpec,
        mapping: FileMapping,
        context: dict[str, Any],
    ) -> Iterator[tuple[str, bytes]]:
        source = self.resolve_source(mapping.source)
        destination = normalise_destination(mapping.destination)

        if source.is_dir():
            entries = [(f"{destination}/{rel}", path) for rel, path in _iter_files(source)]
        elif source.is_file():
            entries = [(destination, source)]
        else:
            raise FeatureSourceError(feature.slug, mapping.source)

        for dest, path in entries:
            if not should_include_file(dest):
                continue
            try:
                content = path.read_bytes()
            except OSError as exc:
                raise FeatureSourceError(feature.slug, mapping.source, str(exc)) from exc
            if mapping.transform == "template":
                text = self.renderer.render_string(content.decode("utf-8"), context)
                content = text.encode("utf-8")
            yield dest, content


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def normalise_destination(destination: str) -> str:
    """Collapse ``.``/``..`` segments; reject paths that leave the project."""
    parts: list[str] = []
    raw = destination.replace("\\", "/")
    if raw.startswith("/") or (len(raw) > 1 and raw[1] == ":"):
        raise PathTraversalError(destination, "fileMappings.destination")
    for part in PurePosixPath(raw).parts:
        if part == "..":
            if not parts:
                raise PathTraversalError(destination, "fileMappings.destination")
            parts.pop()
        elif part not in ("", "."):
            parts.append(part)
    if not parts:
        raise PathTraversalError(destination, "fileMappings.destination")
    return "/".join(parts)


def _iter_files(root: Path, prefix: str = "") -> Iterator[tuple[str, Path]]:
    """Yield ``(relative_posix_path, path)`` for included files, sorted by name."""
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        rel = f"{prefix}/{entry.name}" if prefix else entry.name
        if not should_include_file(rel):
            continue
        if entry.is_dir():
            yield from _iter_files(entry, rel)
        elif entry.is_file():
            yield rel, entry


def assemble(base_tree_root: str | Path, ordered_features: Iterable[FeatureSpec]) -> VirtualFileTree:
    """Convenience wrapper returning only the assembled tree."""
    return FileAssembler(base_tree_root).assemble(ordered_features).tree
