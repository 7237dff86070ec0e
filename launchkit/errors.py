"""Exception taxonomy for the project generation engine.

Every error raised by a generation step derives from ``GenerationError`` and
carries a machine-readable ``kind`` plus the offending ``identifiers``
(feature slugs, model names, paths).  The job registry in
``launchkit.pipeline`` copies both onto the failed job record so the catalog
or the feature author can be corrected.
"""

from __future__ import annotations

from collections.abc import Iterable


class GenerationError(Exception):
    """Base class for errors that abort a generation run."""

    kind: str = "generation_error"

    def __init__(self, message: str, identifiers: Iterable[str] = ()) -> None:
        self.identifiers: list[str] = list(identifiers)
        super().__init__(message)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class UnknownFeatureError(GenerationError):
    """A selected, template-provided or required slug is not in the catalog."""

    kind = "unknown_feature"

    def __init__(self, slugs: Iterable[str], required_by: dict[str, list[str]] | None = None) -> None:
        self.slugs = sorted(set(slugs))
        self.required_by = required_by or {}
        details = []
        for slug in self.slugs:
            owners = self.required_by.get(slug)
            if owners:
                details.append(f"{slug} (required by {', '.join(owners)})")
            else:
                details.append(slug)
        super().__init__(f"Unknown feature(s): {', '.join(details)}", self.slugs)


class DependencyCycleError(GenerationError):
    """Raised when cycle rejection is enabled and ``requires`` forms a cycle."""

    kind = "dependency_cycle"

    def __init__(self, cycles: list[list[str]]) -> None:
        self.cycles = cycles
        rendered = "; ".join(" -> ".join(cycle + cycle[:1]) for cycle in cycles)
        members = sorted({slug for cycle in cycles for slug in cycle})
        super().__init__(f"Dependency cycle(s) detected: {rendered}", members)


class CatalogError(GenerationError):
    """The feature catalog could not be queried."""

    kind = "catalog_unavailable"


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


class PathTraversalError(GenerationError):
    """A file mapping points outside its allowed root."""

    kind = "path_traversal"

    def __init__(self, path: str, label: str) -> None:
        self.path = path
        super().__init__(f"Path traversal detected in {label}: {path}", [path])


class FeatureSourceError(GenerationError):
    """A feature's file mapping source does not exist or cannot be read."""

    kind = "feature_source_missing"

    def __init__(self, feature: str, source: str, reason: str = "not found") -> None:
        self.feature = feature
        self.source = source
        super().__init__(
            f"Feature '{feature}' file source {source} could not be read: {reason}",
            [feature, source],
        )


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


class DuplicateModelError(GenerationError):
    """Two schema sources declare the same model or enum name."""

    kind = "duplicate_model"

    def __init__(self, name: str, first_source: str, second_source: str) -> None:
        self.name = name
        self.first_source = first_source
        self.second_source = second_source
        super().__init__(
            f"Schema block '{name}' is declared by both {first_source} and {second_source}",
            [name],
        )


class FragmentSourceError(GenerationError):
    """A schema fragment file could not be read."""

    kind = "schema_fragment_missing"

    def __init__(self, model: str, source: str, reason: str = "not found") -> None:
        self.model = model
        self.source = source
        super().__init__(
            f"Schema fragment for '{model}' at {source} could not be read: {reason}",
            [model, source],
        )


class SchemaSyntaxError(GenerationError):
    """A schema source has a block that is never closed."""

    kind = "schema_syntax"

    def __init__(self, source: str, block: str) -> None:
        self.source = source
        super().__init__(f"Unterminated block '{block}' in {source}", [block, source])


class ManifestError(GenerationError):
    """A base ``package.json`` is missing or malformed."""

    kind = "manifest_unreadable"


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class GenerationInProgressError(GenerationError):
    """A generation run for the same order is already queued or running."""

    kind = "generation_in_progress"

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"A generation run for order {order_id} is already in progress", [order_id])
