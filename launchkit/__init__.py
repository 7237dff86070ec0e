"""LaunchKit -- project generation engine.

Turns a paid order (selected features, template, tier and license) into a
complete starter project: the feature closure is resolved against the
catalog, feature files are overlaid on the core tree, Prisma schema
fragments and npm manifests are merged, and per-order documents are
rendered.

Quick usage::

    from launchkit import GeneratorConfig, InMemoryCatalog, ProjectGenerator

    catalog = InMemoryCatalog.from_json_file("catalog.json")
    generator = ProjectGenerator(catalog, GeneratorConfig(project_root="."))
    project = await generator.generate(order)
    project.tree.write_to("./downloads")
"""

from launchkit.catalog_client import FeatureCatalog, HttpCatalog, InMemoryCatalog
from launchkit.config import GeneratorConfig
from launchkit.pipeline import GeneratedProject, GenerationJobs, ProjectGenerator
from launchkit.resolver import FeatureResolver, resolve_features

__version__ = "0.1.0"

__all__ = [
    "FeatureCatalog",
    "FeatureResolver",
    "GeneratedProject",
    "GenerationJobs",
    "GeneratorConfig",
    "HttpCatalog",
    "InMemoryCatalog",
    "ProjectGenerator",
    "resolve_features",
]
