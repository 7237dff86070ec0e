"""LaunchKit generation pipeline.

Runs one order through the five generation steps:

Step 1: RESOLVE   -- Expand the selection into the full feature closure.
Step 2: ASSEMBLE  -- Overlay feature files onto the core tree.
Step 3: SCHEMA    -- Merge Prisma fragments into the core schema.
Step 4: MANIFESTS -- Merge npm packages and scripts into package.json.
Step 5: DOCUMENTS -- Render .env.example, LICENSE.md, README.md and
                     starter-config.json.

The result is a ``VirtualFileTree`` rooted at the project name; writing it
to disk or packing it into an archive is up to the caller.

Usage::

    launchkit order.json --catalog catalog.json --output ./downloads
    launchkit order.json --catalog https://studio.example.com -o ./out
"""

from __future__ import annotations

import asyncio
import sys
import time
import traceback
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from rich.panel import Panel

from launchkit.assembler.files import FileAssembler, FileOverride
from launchkit.assembler.package_merger import (
    VersionConflict,
    collect_package_fragments,
    generate_scripts,
    load_base_package,
    merge_package_json,
    stringify_package_json,
)
from launchkit.assembler.schema_merger import SchemaMerger, SchemaMergeResult, collect_schema_mappings
from launchkit.catalog_client import FeatureCatalog, HttpCatalog, InMemoryCatalog
from launchkit.config import CatalogConfig, GeneratorConfig
from launchkit.documents import DocumentGenerator, generate_project_name
from launchkit.errors import GenerationError, GenerationInProgressError, ManifestError
from launchkit.models import FeatureSpec, OrderDetails, ResolvedFeatureSet, VirtualFileTree
from launchkit.resolver import FeatureResolver
from launchkit.templates import TemplateRenderer
from launchkit.utils import (
    console,
    format_duration,
    load_json,
    print_error,
    print_step_header,
    print_success,
    print_summary_table,
    print_warning,
    utc_now,
)

SCHEMA_PATH = "backend/prisma/schema.prisma"
ENV_EXAMPLE_PATH = "backend/.env.example"

STEP_NAMES: dict[int, str] = {
    1: "RESOLVE",
    2: "ASSEMBLE",
    3: "SCHEMA",
    4: "MANIFESTS",
    5: "DOCUMENTS",
}


# ---------------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------------


class GeneratedProject(BaseModel):
    """Everything produced for one order.

    ``tree`` holds the complete download with every path prefixed by
    ``project_name``; the other fields expose the intermediate results for
    reporting.
    """

    project_name: str
    resolved: ResolvedFeatureSet
    tree: VirtualFileTree
    merged_schema: SchemaMergeResult
    manifests: dict[str, dict[str, Any]] = Field(default_factory=dict)
    version_conflicts: list[VersionConflict] = Field(default_factory=list)
    overrides: list[FileOverride] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class ProjectGenerator:
    """Builds a project download for an order.

    Collaborators are passed in explicitly; a generator holds no state
    between runs, so one instance can serve many orders.

    Attributes:
        catalog: Source of feature records.
        config: Paths, branding and resolver settings.
        verbose: Print step headers and summaries to the console.
    """

    def __init__(
        self,
        catalog: FeatureCatalog,
        config: GeneratorConfig | None = None,
        renderer: TemplateRenderer | None = None,
        verbose: bool = False,
    ) -> None:
        self.catalog = catalog
        self.config = config or GeneratorConfig()
        self.renderer = renderer or TemplateRenderer()
        self.verbose = verbose
        self.resolver = FeatureResolver(
            catalog,
            max_attempts=self.config.catalog.max_attempts,
            reject_cycles=self.config.reject_cycles,
        )
        self.documents = DocumentGenerator(
            self.config.brand_name,
            self.renderer,
            brand_url=self.config.brand_url,
            docs_url=self.config.docs_url,
        )

    def _step(self, number: int) -> None:
        if self.verbose:
            print_step_header(number, STEP_NAMES[number])

    async def generate(
        self,
        order: OrderDetails,
        generated_at: Optional[datetime] = None,
    ) -> GeneratedProject:
        """Run every generation step for *order*.

        Any ``GenerationError`` aborts the run; nothing partial is returned.

        Args:
            order: The paid order to build.
            generated_at: Timestamp written into the documents.  Defaults to
                the current UTC time.
        """
        moment = generated_at or utc_now()
        project_name = generate_project_name(order)
        core_path = self.config.core_path
        warnings: list[str] = []

        # Step 1
        self._step(1)
        resolved = await self.resolver.resolve(
            order.selected_features, order.tier, order.template_features
        )
        features = resolved.features

        # Step 2
        self._step(2)
        assembler = FileAssembler(core_path, self.config.project_root, self.renderer)
        assembly = await asyncio.to_thread(
            assembler.assemble, features, self._template_context(order, project_name, resolved)
        )
        if self.verbose:
            for override in assembly.overrides:
                console.print(
                    f"  [dim]{override.path}: {override.previous_owner} -> {override.owner}[/dim]"
                )

        # Step 3
        self._step(3)
        merged_schema = await asyncio.to_thread(self._merge_schema, features)

        # Step 4
        self._step(4)
        generated: dict[str, str] = {SCHEMA_PATH: merged_schema.schema_text}
        manifests, conflicts = await asyncio.to_thread(
            self._merge_manifests, project_name, resolved, warnings
        )

        for platform, manifest in manifests.items():
            generated[f"{platform}/package.json"] = stringify_package_json(manifest)

        # Step 5
        self._step(5)
        generated[ENV_EXAMPLE_PATH] = self.documents.generate_env_example(features)
        generated["LICENSE.md"] = self.documents.generate_license(order, moment)
        generated["README.md"] = self.documents.generate_readme(order, features, moment)
        generated["starter-config.json"] = self.documents.generate_config(order, features, moment)

        for conflict in conflicts:
            warnings.append(
                f"{conflict.package}: using {conflict.selected} over {', '.join(conflict.alternatives)}"
            )
        if self.verbose:
            for warning in warnings:
                print_warning(f"  {warning}")

        tree = assembly.tree.with_files(generated).prefixed(project_name)
        return GeneratedProject(
            project_name=project_name,
            resolved=resolved,
            tree=tree,
            merged_schema=merged_schema,
            manifests=manifests,
            version_conflicts=conflicts,
            overrides=assembly.overrides,
            warnings=warnings,
        )

    def _merge_schema(self, features: list[FeatureSpec]) -> SchemaMergeResult:
        core_path = self.config.core_path
        base_schema_path = core_path / SCHEMA_PATH
        base_schema = base_schema_path.read_text(encoding="utf-8") if base_schema_path.is_file() else ""
        return SchemaMerger(self.config.project_root, core_path).merge(
            base_schema, collect_schema_mappings(features)
        )

    def _merge_manifests(
        self,
        project_name: str,
        resolved: ResolvedFeatureSet,
        warnings: list[str],
    ) -> tuple[dict[str, dict[str, Any]], list[VersionConflict]]:
        """Merge the backend manifest and, when the core ships one, the web manifest.

        A missing web ``package.json`` is skipped and noted in *warnings*.
        """
        core_path = self.config.core_path
        features = resolved.features
        manifests: dict[str, dict[str, Any]] = {}
        conflicts: list[VersionConflict] = []

        backend = merge_package_json(
            load_base_package(core_path, "backend"),
            collect_package_fragments(features, "backend"),
            project_name=project_name,
            brand=self.config.brand_name,
        )
        backend.package_json["scripts"] = generate_scripts(
            backend.package_json.get("scripts") or {}, resolved.all_feature_slugs
        )
        manifests["backend"] = backend.package_json
        conflicts.extend(backend.version_conflicts)

        try:
            web_base = load_base_package(core_path, "web")
        except ManifestError as exc:
            warnings.append(f"Skipped web/package.json: {exc}")
        else:
            web = merge_package_json(
                web_base,
                collect_package_fragments(features, "web"),
                project_name=project_name,
                brand=self.config.brand_name,
            )
            manifests["web"] = web.package_json
            conflicts.extend(web.version_conflicts)

        return manifests, conflicts

    def _template_context(
        self,
        order: OrderDetails,
        project_name: str,
        resolved: ResolvedFeatureSet,
    ) -> dict[str, Any]:
        """Variables available to feature files mapped with ``transform: template``."""
        return {
            "project_name": project_name,
            "brand_name": self.config.brand_name,
            "tier": order.tier,
            "order_number": order.order_number,
            "template_slug": order.template.slug if order.template else None,
            "features": resolved.all_feature_slugs,
        }


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationJob(BaseModel):
    """State of one order's generation run."""

    order_id: str
    status: JobStatus = JobStatus.QUEUED
    submitted_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    project_name: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    error_identifiers: list[str] = Field(default_factory=list)
    result: Optional[GeneratedProject] = Field(default=None, exclude=True)

    @property
    def active(self) -> bool:
        return self.status in (JobStatus.QUEUED, JobStatus.RUNNING)


class GenerationJobs:
    """Background job registry with at most one active run per order.

    Submitting an order whose previous run is still queued or running raises
    ``GenerationInProgressError``.  Finished jobs (completed or failed) may
    be resubmitted, and stay registered until ``forget`` or ``prune`` drops
    them.
    """

    def __init__(self, generator: ProjectGenerator) -> None:
        self.generator = generator
        self._jobs: dict[str, GenerationJob] = {}
        self._tasks: dict[str, asyncio.Task[GenerationJob]] = {}

    def get(self, order_id: str) -> GenerationJob | None:
        return self._jobs.get(order_id)

    async def submit(self, order: OrderDetails, generated_at: Optional[datetime] = None) -> GenerationJob:
        """Queue a run for *order* and return its job record immediately."""
        existing = self._jobs.get(order.id)
        if existing is not None and existing.active:
            raise GenerationInProgressError(order.id)

        job = GenerationJob(order_id=order.id)
        self._jobs[order.id] = job
        self._tasks[order.id] = asyncio.create_task(self._run(job, order, generated_at))
        return job

    async def wait(self, order_id: str) -> GenerationJob:
        """Wait for the order's current run to finish and return its record."""
        task = self._tasks.get(order_id)
        if task is None:
            raise KeyError(order_id)
        return await task

    async def run(self, order: OrderDetails, generated_at: Optional[datetime] = None) -> GenerationJob:
        """Submit *order* and wait for the outcome."""
        await self.submit(order, generated_at)
        return await self.wait(order.id)

    def forget(self, order_id: str) -> GenerationJob | None:
        """Drop a finished job and its task, returning the removed record.

        Raises:
            GenerationInProgressError: The order's run is still queued or running.
        """
        job = self._jobs.get(order_id)
        if job is not None and job.active:
            raise GenerationInProgressError(order_id)
        self._tasks.pop(order_id, None)
        return self._jobs.pop(order_id, None)

    def prune(self, older_than: Optional[timedelta] = None) -> list[str]:
        """Forget finished jobs, optionally only those finished before ``now - older_than``.

        Returns the order ids that were removed.
        """
        cutoff = utc_now() - older_than if older_than is not None else None
        stale = [
            order_id
            for order_id, job in self._jobs.items()
            if not job.active
            and (cutoff is None or (job.finished_at is not None and job.finished_at <= cutoff))
        ]
        for order_id in stale:
            self.forget(order_id)
        return stale

    async def _run(
        self,
        job: GenerationJob,
        order: OrderDetails,
        generated_at: Optional[datetime],
    ) -> GenerationJob:
        job.status = JobStatus.RUNNING
        job.started_at = utc_now()
        try:
            project = await self.generator.generate(order, generated_at)
        except GenerationError as exc:
            job.status = JobStatus.FAILED
            job.error = str(exc)
            job.error_kind = exc.kind
            job.error_identifiers = list(exc.identifiers)
        except OSError as exc:
            job.status = JobStatus.FAILED
            job.error = str(exc)
            job.error_kind = "io_error"
            job.error_identifiers = [str(exc.filename)] if exc.filename else []
        except Exception as exc:
            job.status = JobStatus.FAILED
            job.error = traceback.format_exc()
            job.error_kind = "internal_error"
            print_error(f"Generation for order {order.id} crashed: {exc}")
        else:
            job.status = JobStatus.COMPLETED
            job.project_name = project.project_name
            job.result = project
        finally:
            job.finished_at = utc_now()
        return job


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def build_catalog(catalog_config: CatalogConfig) -> FeatureCatalog:
    """Return an ``HttpCatalog`` when a URL is configured, else a file catalog."""
    if catalog_config.url:
        return HttpCatalog(catalog_config.url, timeout=catalog_config.timeout)
    if catalog_config.path is None:
        raise ValueError("No feature catalog configured: set a catalog URL or path")
    return InMemoryCatalog.from_json_file(catalog_config.path)


def _print_result(project: GeneratedProject, output_dir: Path, written: int, elapsed: float) -> None:
    print_summary_table(
        {
            "Project": project.project_name,
            "Features": str(len(project.resolved.all_feature_slugs)),
            "Models": str(len(project.merged_schema.models)),
            "Enums": str(len(project.merged_schema.enums)),
            "Files written": str(written),
            "Overrides": str(len(project.overrides)),
            "Version conflicts": str(len(project.version_conflicts)),
        },
        title="Generation Summary",
    )
    console.print(
        Panel(
            f"Output   : {(output_dir / project.project_name).resolve()}\n"
            f"Duration : {format_duration(elapsed)}",
            title="[bold]Generation Complete[/bold]",
            border_style="green",
        )
    )


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point for ``launchkit``."""
    import argparse

    parser = argparse.ArgumentParser(
        description="LaunchKit -- generate a starter project from an order",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  launchkit order.json --catalog catalog.json\n"
            "  launchkit order.json --catalog https://studio.example.com -o ./out\n"
            "  launchkit order.json --config launchkit.json --reject-cycles\n"
        ),
    )

    parser.add_argument("order", help="Path to the order JSON file")
    parser.add_argument(
        "--catalog",
        default=None,
        help="Catalog JSON file or studio base URL (default: LK_CATALOG_PATH / LK_CATALOG_URL)",
    )
    parser.add_argument("--output", "-o", default=None, help="Output directory (default: ./output)")
    parser.add_argument("--project-root", default=None, help="Directory containing core/ and modules/")
    parser.add_argument("--config", default=None, help="Saved GeneratorConfig JSON file")
    parser.add_argument("--brand", default=None, help="Brand name used in generated documents")
    parser.add_argument(
        "--reject-cycles",
        action="store_true",
        help="Fail when feature requirements form a cycle",
    )

    args = parser.parse_args()

    order_path = Path(args.order)
    if not order_path.exists():
        console.print(f"[bold red]Error:[/bold red] Order file not found: {order_path}")
        sys.exit(1)

    config = GeneratorConfig.load(Path(args.config)) if args.config else GeneratorConfig.from_env()
    if args.catalog:
        if args.catalog.startswith(("http://", "https://")):
            config.catalog.url = args.catalog
        else:
            config.catalog.url = None
            config.catalog.path = Path(args.catalog)
    if args.output:
        config.output_dir = Path(args.output)
    if args.project_root:
        config.project_root = Path(args.project_root)
    if args.brand:
        config.brand_name = args.brand
    if args.reject_cycles:
        config.reject_cycles = True

    try:
        catalog = build_catalog(config.catalog)
        order = OrderDetails.model_validate(load_json(order_path))
    except (ValueError, GenerationError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    console.print(
        Panel(
            f"[bold bright_cyan]LaunchKit Generator[/bold bright_cyan]\n"
            f"Order   : {order.order_number} ({order.tier})\n"
            f"Core    : {config.core_path.resolve()}\n"
            f"Output  : {config.output_dir.resolve()}",
            title="[bold]Generation Start[/bold]",
            border_style="bright_cyan",
        )
    )

    start = time.monotonic()
    generator = ProjectGenerator(catalog, config, verbose=True)
    try:
        project = asyncio.run(generator.generate(order))
    except GenerationError as exc:
        print_error(f"Generation failed [{exc.kind}]: {exc}")
        if exc.identifiers:
            console.print(f"  Offending: {', '.join(exc.identifiers)}")
        sys.exit(1)
    except OSError as exc:
        print_error(f"Generation failed [io_error]: {exc}")
        sys.exit(1)

    try:
        written = project.tree.write_to(config.output_dir)
    except OSError as exc:
        print_error(f"Could not write project to {config.output_dir}: {exc}")
        sys.exit(1)
    _print_result(project, config.output_dir, len(written), time.monotonic() - start)
    print_success("Project generated successfully!")


if __name__ == "__main__":
    main()
