"""LaunchKit generator configuration.

Centralised, typed configuration for the generation engine. All settings use
Pydantic v2 models so they can be validated at construction time and serialised
to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field


class CatalogConfig(BaseModel):
    """Where feature records come from and how hard to try fetching them."""

    url: Optional[str] = Field(
        default=None, description="Base URL of the studio API; None means a local catalog file"
    )
    path: Optional[Path] = Field(default=None, description="Local catalog JSON file")
    timeout: int = Field(default=30, ge=1, description="Per-request timeout in seconds")
    max_attempts: int = Field(
        default=3, ge=1, description="How many times a failed catalog batch is retried as a whole"
    )


class GeneratorConfig(BaseModel):
    """Global generator configuration.

    Instances are typically created once by the CLI entry point (or by the
    hosting service) and passed explicitly into ``ProjectGenerator``; there
    is no module-level singleton.
    """

    project_root: Path = Field(
        default=Path("."), description="Directory that contains core/ and modules/"
    )
    core_dir: str = Field(default="core", description="Base template directory name")
    output_dir: Path = Field(default=Path("./output"))
    brand_name: str = Field(default="LaunchKit")
    brand_url: str = Field(default="https://launchkit.dev")
    docs_url: str = Field(default="https://docs.launchkit.dev")
    reject_cycles: bool = Field(
        default=False, description="Fail resolution when feature requirements form a cycle"
    )
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def core_path(self) -> Path:
        """Root of the base project tree copied into every download."""
        return self.project_root / self.core_dir

    @property
    def modules_path(self) -> Path:
        """Root of the per-module payloads referenced by file mappings."""
        return self.project_root / "modules"

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path | None = None) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file. Defaults to ``<output_dir>/launchkit.json``.

        Returns:
            The resolved path where the file was written.
        """
        target = path or (self.output_dir / "launchkit.json")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "GeneratorConfig":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "GeneratorConfig":
        """Build a ``GeneratorConfig`` from environment variables.

        Recognised variables (all optional):
            LK_PROJECT_ROOT, LK_CORE_DIR, LK_OUTPUT_DIR, LK_BRAND_NAME,
            LK_REJECT_CYCLES, LK_CATALOG_URL, LK_CATALOG_PATH,
            LK_CATALOG_TIMEOUT, LK_CATALOG_MAX_ATTEMPTS.
        """
        catalog_kwargs: dict[str, Any] = {}
        if os.environ.get("LK_CATALOG_URL"):
            catalog_kwargs["url"] = os.environ["LK_CATALOG_URL"]
        if os.environ.get("LK_CATALOG_PATH"):
            catalog_kwargs["path"] = Path(os.environ["LK_CATALOG_PATH"])
        if os.environ.get("LK_CATALOG_TIMEOUT"):
            catalog_kwargs["timeout"] = int(os.environ["LK_CATALOG_TIMEOUT"])
        if os.environ.get("LK_CATALOG_MAX_ATTEMPTS"):
            catalog_kwargs["max_attempts"] = int(os.environ["LK_CATALOG_MAX_ATTEMPTS"])

        kwargs: dict[str, Any] = {"catalog": CatalogConfig(**catalog_kwargs)}
        if os.environ.get("LK_PROJECT_ROOT"):
            kwargs["project_root"] = Path(os.environ["LK_PROJECT_ROOT"])
        if os.environ.get("LK_CORE_DIR"):
            kwargs["core_dir"] = os.environ["LK_CORE_DIR"]
        if os.environ.get("LK_OUTPUT_DIR"):
            kwargs["output_dir"] = Path(os.environ["LK_OUTPUT_DIR"])
        if os.environ.get("LK_BRAND_NAME"):
            kwargs["brand_name"] = os.environ["LK_BRAND_NAME"]
        if os.environ.get("LK_REJECT_CYCLES"):
            kwargs["reject_cycles"] = os.environ["LK_REJECT_CYCLES"].strip().lower() in (
                "1", "true", "yes", "on",
            )

        return cls(**kwargs)
