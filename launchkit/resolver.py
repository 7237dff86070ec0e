"""Feature dependency resolution.

Turns an order's selection (plus the template's bundled features) into the
full transitive closure of required features, fetched from the catalog in
batched waves.

Ordering contract: selected slugs first, then template slugs, then
dependencies in the order they are discovered wave by wave.  The file
assembler's last-writer-wins overrides and the README grouping both rely on
this order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from launchkit.catalog_client import FeatureCatalog
from launchkit.errors import CatalogError, DependencyCycleError, UnknownFeatureError
from launchkit.models import FeatureSpec, OrderedSlugSet, ResolvedFeatureSet
from launchkit.utils import print_warning


class FeatureResolver:
    """Computes the dependency closure of a feature selection.

    Args:
        catalog: Any object implementing ``FeatureCatalog``.
        max_attempts: How many times a failed catalog batch is retried.
            Batches are retried whole; the working set only changes after a
            batch succeeds.
        reject_cycles: Raise ``DependencyCycleError`` instead of tolerating
            cyclic ``requires`` graphs.
        retry_delay: Base delay in seconds between attempts (linear backoff).
    """

    def __init__(
        self,
        catalog: FeatureCatalog,
        max_attempts: int = 3,
        reject_cycles: bool = False,
        retry_delay: float = 0.25,
    ) -> None:
        self.catalog = catalog
        self.max_attempts = max(1, max_attempts)
        self.reject_cycles = reject_cycles
        self.retry_delay = retry_delay

    # -- Public API --------------------------------------------------------

    async def resolve(
        self,
        selected: Iterable[str],
        tier: str,
        template_base: Iterable[str] = (),
    ) -> ResolvedFeatureSet:
        """Resolve *selected* and *template_base* into a closed feature set.

        *tier* is accepted for future gating; it does not filter the walk.

        Raises:
            UnknownFeatureError: A seed or required slug is not in the catalog.
            CatalogError: The catalog kept failing after ``max_attempts``.
            DependencyCycleError: Only when ``reject_cycles`` is set.
        """
        seed = OrderedSlugSet(selected)
        seed.extend(template_base)

        order = OrderedSlugSet()
        working: dict[str, FeatureSpec] = {}
        required_by: dict[str, list[str]] = {}
        pending = seed.as_list()

        while pending:
            batch = await self._fetch_batch(pending)
            found = {feature.slug: feature for feature in batch}

            missing = [slug for slug in pending if slug not in found]
            if missing:
                raise UnknownFeatureError(
                    missing, {slug: required_by[slug] for slug in missing if slug in required_by}
                )

            for slug in pending:
                working[slug] = found[slug]
                order.add(slug)

            next_wave = OrderedSlugSet()
            for slug in pending:
                for dep in working[slug].requires:
                    if dep == slug or dep in working:
                        continue
                    required_by.setdefault(dep, []).append(slug)
                    next_wave.add(dep)
            pending = next_wave.as_list()

        dependency_tree = {
            slug: [dep for dep in working[slug].requires if dep != slug] for slug in order
        }
        cycles = find_cycles(dependency_tree)
        if cycles:
            if self.reject_cycles:
                raise DependencyCycleError(cycles)
            for cycle in cycles:
                print_warning(f"Feature requirement cycle tolerated: {' -> '.join(cycle + cycle[:1])}")

        return ResolvedFeatureSet(
            all_feature_slugs=order.as_list(),
            features=[working[slug] for slug in order],
            dependency_tree=dependency_tree,
            cycles=cycles,
        )

    # -- Catalog access ----------------------------------------------------

    async def _fetch_batch(self, slugs: list[str]) -> list[FeatureSpec]:
        """Query the catalog for *slugs*, retrying the whole batch on failure."""
        last_error: CatalogError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self.catalog.find_features(set(slugs))
            except CatalogError as exc:
                last_error = exc
                if attempt < self.max_attempts:
                    print_warning(
                        f"Catalog lookup failed (attempt {attempt}/{self.max_attempts}): {exc}"
                    )
                    if self.retry_delay > 0:
                        await asyncio.sleep(self.retry_delay * attempt)

        raise CatalogError(
            f"Catalog lookup failed after {self.max_attempts} attempts: {last_error}",
            slugs,
        ) from last_error


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------


def find_cycles(dependency_tree: dict[str, list[str]]) -> list[list[str]]:
    """Return every distinct elementary cycle reachable by DFS back-edges.

    Each cycle is rotated so that its smallest slug comes first, which makes
    the output independent of traversal start.  Self-references are not
    reported.
    """
    visiting: list[str] = []
    on_path: set[str] = set()
    done: set[str] = set()
    seen: set[tuple[str, ...]] = set()
    cycles: list[list[str]] = []

    def visit(slug: str) -> None:
        visiting.append(slug)
        on_path.add(slug)
        for dep in dependency_tree.get(slug, []):
            if dep == slug or dep in done:
                continue
            if dep in on_path:
                cycle = visiting[visiting.index(dep):]
                pivot = cycle.index(min(cycle))
                normalised = tuple(cycle[pivot:] + cycle[:pivot])
                if normalised not in seen:
                    seen.add(normalised)
                    cycles.append(list(normalised))
                continue
            visit(dep)
        on_path.discard(slug)
        visiting.pop()
        done.add(slug)

    for slug in dependency_tree:
        if slug not in done:
            visit(slug)
    return cycles


async def resolve_features(
    catalog: FeatureCatalog,
    selected: Iterable[str],
    tier: str,
    template_base: Iterable[str] = (),
) -> ResolvedFeatureSet:
    """Convenience wrapper around ``FeatureResolver(catalog).resolve``."""
    return await FeatureResolver(catalog).resolve(selected, tier, template_base)
