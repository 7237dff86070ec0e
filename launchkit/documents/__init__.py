"""Per-order document generation (env template, license, README, config)."""

from launchkit.documents.generator import (
    DocumentGenerator,
    generate_config,
    generate_env_example,
    generate_license,
    generate_project_name,
    generate_readme,
)

__all__ = [
    "DocumentGenerator",
    "generate_config",
    "generate_env_example",
    "generate_license",
    "generate_project_name",
    "generate_readme",
]
