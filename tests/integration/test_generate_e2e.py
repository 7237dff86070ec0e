"""End-to-end generation tests.

Runs the full pipeline (file catalog -> resolver -> assembler -> mergers ->
documents) against the sample project root, both through the Python API and
through the ``launchkit`` CLI entry point, and checks the project written to
disk.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from launchkit import GeneratorConfig, InMemoryCatalog, ProjectGenerator
from launchkit.pipeline import main


pytestmark = pytest.mark.integration


@pytest.fixture
def catalog_file(tmp_path: Path, project_features) -> Path:
    path = tmp_path / "catalog.json"
    records = [f.model_dump(by_alias=True, mode="json") for f in project_features]
    path.write_text(json.dumps({"features": records}, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def order_file(tmp_path: Path, order_data) -> Path:
    path = tmp_path / "order.json"
    path.write_text(json.dumps(order_data, indent=2), encoding="utf-8")
    return path


class TestGenerateToDisk:
    @pytest.mark.asyncio
    async def test_written_project(self, catalog_file, project_root, order, tmp_path: Path, fixed_now):
        config = GeneratorConfig(project_root=project_root, output_dir=tmp_path / "downloads")
        catalog = InMemoryCatalog.from_json_file(catalog_file)

        project = await ProjectGenerator(catalog, config).generate(order, fixed_now)
        project.tree.write_to(config.output_dir)

        root = config.output_dir / "saas-pro"
        assert (root / "backend" / "src" / "social.ts").is_file()
        assert (root / "backend" / "src" / "stripe" / "webhook.ts").is_file()
        assert not (root / "backend" / ".env").exists()
        assert not (root / "backend" / "node_modules").exists()
        assert not (root / "web" / "src" / "_preview").exists()

        schema = (root / "backend" / "prisma" / "schema.prisma").read_text(encoding="utf-8")
        assert schema.count("generator client") == 1
        for block in ("model User", "model Session", "model Payment", "enum PaymentStatus"):
            assert block in schema

        manifest = json.loads((root / "backend" / "package.json").read_text(encoding="utf-8"))
        assert "stripe" in manifest["dependencies"]
        assert "devDependencies" in manifest

        license_text = (root / "LICENSE.md").read_text(encoding="utf-8")
        assert "LK-KEY-1234" in license_text

    @pytest.mark.asyncio
    async def test_closure_invariant_on_generated_config(self, catalog_file, project_root, order, tmp_path: Path):
        config = GeneratorConfig(project_root=project_root)
        catalog = InMemoryCatalog.from_json_file(catalog_file)

        project = await ProjectGenerator(catalog, config).generate(order)

        members = set(project.resolved.all_feature_slugs)
        for feature in project.resolved.features:
            assert set(feature.requires) <= members
        starter = json.loads(project.tree.read_text("saas-pro/starter-config.json"))
        assert set(starter["features"]) == members


class TestCli:
    def test_cli_writes_project(self, catalog_file, order_file, project_root, tmp_path: Path):
        output = tmp_path / "cli-out"
        argv = [
            "launchkit",
            str(order_file),
            "--catalog", str(catalog_file),
            "--project-root", str(project_root),
            "--output", str(output),
        ]

        with patch.object(sys, "argv", argv), patch.dict("os.environ", {}, clear=True):
            main()

        assert (output / "saas-pro" / "README.md").is_file()
        assert (output / "saas-pro" / "web" / "package.json").is_file()

    def test_cli_missing_order_exits(self, tmp_path: Path):
        argv = ["launchkit", str(tmp_path / "missing.json"), "--catalog", "catalog.json"]

        with patch.object(sys, "argv", argv), pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1

    def test_cli_generation_error_exits(self, catalog_file, order_data, project_root, tmp_path: Path):
        order_data["selectedFeatures"] = ["ghost.feature"]
        order_path = tmp_path / "bad-order.json"
        order_path.write_text(json.dumps(order_data), encoding="utf-8")
        argv = [
            "launchkit",
            str(order_path),
            "--catalog", str(catalog_file),
            "--project-root", str(project_root),
            "--output", str(tmp_path / "never"),
        ]

        with patch.object(sys, "argv", argv), patch.dict("os.environ", {}, clear=True):
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 1
        assert not (tmp_path / "never").exists()

    def test_cli_missing_core_tree_exits_cleanly(self, catalog_file, order_file, tmp_path: Path):
        argv = [
            "launchkit",
            str(order_file),
            "--catalog", str(catalog_file),
            "--project-root", str(tmp_path / "no-such-root"),
            "--output", str(tmp_path / "never"),
        ]

        with patch.object(sys, "argv", argv), patch.dict("os.environ", {}, clear=True), \
                patch("launchkit.pipeline.print_error") as mock_error:
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 1
        assert "io_error" in mock_error.call_args.args[0]
        assert not (tmp_path / "never").exists()
