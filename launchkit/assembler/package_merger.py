"""``package.json`` merging.

Folds the npm packages and scripts declared by resolved features into the
core backend/web manifests.  Version conflicts are resolved last-writer-wins
(later features in resolution order override earlier ones and the base) and
recorded so the host can surface them.  Base scripts are never replaced.
Dependency maps and scripts are emitted with sorted keys so that repeated
generation of the same order is byte-identical.  Top-level keys are not
sorted: they keep the base manifest's order (``name`` and ``version``
first, as npm writes them), and a ``description`` missing from the base is
appended after the existing keys.  That order is fixed by the base file, so
the output stays reproducible.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from launchkit.errors import ManifestError
from launchkit.models import FeatureSpec, PackageSpec


DEFAULT_SCRIPTS: dict[str, str] = {
    "dev": "tsx watch src/app.ts",
    "build": "tsc",
    "start": "node dist/app.js",
    "lint": "eslint src",
    "db:migrate": "prisma migrate dev",
    "db:push": "prisma db push",
    "db:generate": "prisma generate",
    "db:seed": "tsx prisma/seed.ts",
}

Platform = Literal["backend", "web"]


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class VersionConflict(BaseModel):
    """A package declared with more than one version constraint."""
    package: str
    selected: str = Field(..., description="The constraint written to the manifest")
    alternatives: list[str] = Field(default_factory=list, description="Constraints that lost")


class NpmMergeResult(BaseModel):
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict)
    version_conflicts: list[VersionConflict] = Field(default_factory=list)


class PackageFragment(BaseModel):
    """The packages and scripts one feature contributes to a manifest."""
    feature: str
    packages: list[PackageSpec] = Field(default_factory=list)
    scripts: dict[str, str] = Field(default_factory=dict)


class PackageMergeResult(BaseModel):
    package_json: dict[str, Any]
    added_dependencies: list[str] = Field(default_factory=list)
    added_dev_dependencies: list[str] = Field(default_factory=list)
    version_conflicts: list[VersionConflict] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Dependency merge
# ---------------------------------------------------------------------------

def merge_npm_packages(
    base_deps: Mapping[str, str],
    base_dev_deps: Mapping[str, str],
    packages: Iterable[PackageSpec],
) -> NpmMergeResult:
    """Union base dependencies with *packages*; the last constraint wins."""
    sections: dict[bool, dict[str, str]] = {False: dict(base_deps), True: dict(base_dev_deps)}
    history: dict[tuple[bool, str], list[str]] = {}
    for dev, deps in sections.items():
        for name, version in deps.items():
            history[(dev, name)] = [version]

    for package in packages:
        target = sections[package.dev]
        target[package.name] = package.version
        seen = history.setdefault((package.dev, package.name), [])
        if package.version not in seen:
            seen.append(package.version)

    conflicts = []
    for (dev, name), versions in history.items():
        if len(versions) < 2:
            continue
        selected = sections[dev][name]
        conflicts.append(VersionConflict(
            package=name,
            selected=selected,
            alternatives=[v for v in versions if v != selected],
        ))

    return NpmMergeResult(
        dependencies=sections[False],
        dev_dependencies=sections[True],
        version_conflicts=conflicts,
    )


def merge_package_json(
    base_pkg: Mapping[str, Any],
    fragments: Iterable[PackageFragment],
    project_name: str | None = None,
    brand: str = "LaunchKit",
) -> PackageMergeResult:
    """Merge feature fragments into a copy of *base_pkg*.

    Every field of the base manifest is preserved.  When *project_name* is
    given it replaces ``name`` and ``description``.
    """
    pkg: dict[str, Any] = copy.deepcopy(dict(base_pkg))
    fragments = list(fragments)
    base_deps = dict(pkg.get("dependencies") or {})
    base_dev_deps = dict(pkg.get("devDependencies") or {})

    merged = merge_npm_packages(
        base_deps,
        base_dev_deps,
        (package for fragment in fragments for package in fragment.packages),
    )

    if project_name:
        pkg["name"] = project_name
        pkg["description"] = f"{project_name} - Generated by {brand}"

    if merged.dependencies or "dependencies" in pkg:
        pkg["dependencies"] = _sorted(merged.dependencies)
    if merged.dev_dependencies or "devDependencies" in pkg:
        pkg["devDependencies"] = _sorted(merged.dev_dependencies)

    scripts = dict(pkg.get("scripts") or {})
    for fragment in fragments:
        for name, command in fragment.scripts.items():
            scripts.setdefault(name, command)
    if scripts or "scripts" in pkg:
        pkg["scripts"] = _sorted(scripts)

    return PackageMergeResult(
        package_json=pkg,
        added_dependencies=[name for name in merged.dependencies if name not in base_deps],
        added_dev_dependencies=[name for name in merged.dev_dependencies if name not in base_dev_deps],
        version_conflicts=merged.version_conflicts,
    )


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------

def generate_scripts(
    base_scripts: Mapping[str, str],
    feature_slugs: Iterable[str],
    feature_scripts: Mapping[str, Mapping[str, str]] | None = None,
) -> dict[str, str]:
    """Return *base_scripts* completed with defaults and feature scripts.

    *feature_scripts* maps a feature slug to the scripts it declares; only
    slugs in *feature_slugs* contribute, in that order.  Existing script
    names are never overwritten: base scripts win over defaults, and
    defaults win over feature scripts.
    """
    scripts = dict(base_scripts)
    for name, command in DEFAULT_SCRIPTS.items():
        scripts.setdefault(name, command)
    for slug in feature_slugs:
        for name, command in (feature_scripts or {}).get(slug, {}).items():
            scripts.setdefault(name, command)
    return _sorted(scripts)


# ---------------------------------------------------------------------------
# I/O helpers
# ---------------------------------------------------------------------------

def stringify_package_json(pkg: Mapping[str, Any]) -> str:
    """Serialise with 2-space indentation and a trailing newline."""
    return json.dumps(pkg, indent=2, ensure_ascii=False) + "\n"


def load_base_package(core_path: str | Path, platform: Platform) -> dict[str, Any]:
    """Read ``<core>/<platform>/package.json``.

    Raises:
        ManifestError: The file is missing or not a JSON object.
    """
    path = Path(core_path) / platform / "package.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ManifestError(f"Could not read base package.json at {path}: {exc}", [str(path)]) from exc
    if not isinstance(data, dict):
        raise ManifestError(f"Could not read base package.json at {path}: not a JSON object", [str(path)])
    return data


def collect_package_fragments(features: Iterable[FeatureSpec], platform: Platform) -> list[PackageFragment]:
    """Build one fragment per feature with the packages targeting *platform*.

    Feature scripts only go to the backend manifest.
    """
    fragments = []
    for feature in features:
        packages = [p for p in feature.npm_packages or [] if p.platform in (platform, "all")]
        scripts = dict(feature.npm_scripts or {}) if platform == "backend" else {}
        if packages or scripts:
            fragments.append(PackageFragment(feature=feature.slug, packages=packages, scripts=scripts))
    return fragments


def _sorted(mapping: Mapping[str, str]) -> dict[str, str]:
    return {key: mapping[key] for key in sorted(mapping)}
