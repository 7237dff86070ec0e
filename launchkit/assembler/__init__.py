"""Assembly of the generated project from the core tree and feature payloads.

Three independent mergers run against the resolved, ordered feature list:

* ``files``: core tree plus file overlays, last writer wins.
* ``schema_merger``: Prisma schema fragments, duplicate names rejected.
* ``package_merger``: ``package.json`` dependencies and scripts.
"""

from launchkit.assembler.files import (
    AssemblyResult,
    FileAssembler,
    FileOverride,
    assemble,
    should_include_file,
)
from launchkit.assembler.package_merger import (
    PackageFragment,
    PackageMergeResult,
    VersionConflict,
    generate_scripts,
    merge_npm_packages,
    merge_package_json,
    stringify_package_json,
)
from launchkit.assembler.schema_merger import SchemaMergeResult, SchemaMerger, merge_schemas

__all__ = [
    "AssemblyResult",
    "FileAssembler",
    "FileOverride",
    "PackageFragment",
    "PackageMergeResult",
    "SchemaMergeResult",
    "SchemaMerger",
    "VersionConflict",
    "assemble",
    "generate_scripts",
    "merge_npm_packages",
    "merge_package_json",
    "merge_schemas",
    "should_include_file",
]
