"""Prisma schema merging.

Combines the core ``schema.prisma`` with the schema fragments contributed by
each resolved feature.  Unlike file overlays, a model or enum name may only
be declared once across the base and all fragments: a second declaration
raises ``DuplicateModelError`` naming both sources.

Fragment sources are either inline Prisma text or paths.  Paths beginning
with ``modules/`` or ``core/`` resolve against the project root; any other
path resolves against the core directory.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, Field

from launchkit.errors import DuplicateModelError, FragmentSourceError, SchemaSyntaxError
from launchkit.models import FeatureSpec, SchemaMapping


DEFAULT_PREAMBLE = """generator client {
  provider = "prisma-client-js"
}

datasource db {
  provider = "postgresql"
  url      = env("DATABASE_URL")
}"""

BASE_LABEL = "base schema"

# Block kinds that share Prisma's type namespace.
NAMED_KINDS = ("model", "enum", "view", "type")
PREAMBLE_KINDS = ("generator", "datasource")

_BLOCK_HEADER = re.compile(
    r"^[ \t]*(model|enum|view|type|generator|datasource)[ \t]+(\w+)[ \t]*\{",
    re.MULTILINE,
)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class SchemaBlock(BaseModel):
    """One top-level ``kind Name { ... }`` block."""
    kind: str
    name: str
    text: str
    source: str


class SchemaMergeResult(BaseModel):
    """Merged schema text plus the model/enum names it declares, in order."""
    schema_text: str = Field(..., description="The merged schema.prisma content")
    models: list[str] = Field(default_factory=list)
    enums: list[str] = Field(default_factory=list)


class SchemaCompleteness(BaseModel):
    """Whether a merged schema declares every model a caller depends on."""
    valid: bool
    missing: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_schema_blocks(text: str, source: str = BASE_LABEL) -> list[SchemaBlock]:
    """Split Prisma *text* into its top-level blocks.

    Braces inside ``//`` comments and string literals are ignored.  Anything
    outside a block (free comments, blank lines) is dropped.

    Raises:
        SchemaSyntaxError: A block is opened but never closed.
    """
    blocks: list[SchemaBlock] = []
    position = 0
    while True:
        match = _BLOCK_HEADER.search(text, position)
        if match is None:
            break
        kind, name = match.group(1), match.group(2)
        end = _find_block_end(text, match.end())
        if end < 0:
            raise SchemaSyntaxError(source, name)
        body = text[match.start():end + 1]
        blocks.append(SchemaBlock(kind=kind, name=name, text=_dedent_block(body), source=source))
        position = end + 1
    return blocks


def _find_block_end(text: str, start: int) -> int:
    """Return the index of the brace closing the block opened before *start*."""
    depth = 1
    index = start
    in_string = False
    while index < len(text):
        char = text[index]
        if in_string:
            if char == "\\":
                index += 2
                continue
            if char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif text.startswith("//", index):
            newline = text.find("\n", index)
            if newline < 0:
                return -1
            index = newline
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1


def _dedent_block(block: str) -> str:
    lines = block.splitlines()
    lines[0] = lines[0].lstrip()
    lines[-1] = lines[-1].strip() if lines[-1].strip() == "}" else lines[-1]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Merger
# ---------------------------------------------------------------------------

class SchemaMerger:
    """Merges a base schema with feature fragments in resolution order.

    Args:
        project_root: Resolves ``modules/...`` and ``core/...`` sources.
        core_path: Resolves any other relative source.  Defaults to
            ``project_root / "core"``.
    """

    def __init__(self, project_root: str | Path | None = None, core_path: str | Path | None = None) -> None:
        self.project_root = Path(project_root) if project_root is not None else Path(".")
        self.core_path = Path(core_path) if core_path is not None else self.project_root / "core"

    def merge(self, base_schema_text: str, fragments: Iterable[SchemaMapping]) -> SchemaMergeResult:
        """Merge *fragments* into *base_schema_text*.

        Raises:
            DuplicateModelError: A model/enum name is declared twice.
            FragmentSourceError: A fragment file could not be read.
            SchemaSyntaxError: A block is never closed.
        """
        declared: dict[str, str] = {}
        models: list[str] = []
        enums: list[str] = []

        def register(blocks: list[SchemaBlock]) -> list[SchemaBlock]:
            kept = []
            for block in blocks:
                if block.kind in PREAMBLE_KINDS:
                    continue
                if block.name in declared:
                    raise DuplicateModelError(block.name, declared[block.name], block.source)
                declared[block.name] = block.source
                (enums if block.kind == "enum" else models).append(block.name)
                kept.append(block)
            return kept

        base_blocks = parse_schema_blocks(base_schema_text, BASE_LABEL)
        register(base_blocks)

        sections: list[str] = []
        base_body = base_schema_text.strip()
        if not any(block.kind in PREAMBLE_KINDS for block in base_blocks):
            sections.append(DEFAULT_PREAMBLE)
        if base_body:
            sections.append(base_body)

        merged_sources: set[str] = set()
        for mapping in fragments:
            text, label, path_key = self._load(mapping)
            if path_key is not None:
                if path_key in merged_sources:
                    continue
                merged_sources.add(path_key)
            kept = register(parse_schema_blocks(text, label))
            if kept:
                sections.append(f"// ---- {label} ----\n\n" + "\n\n".join(block.text for block in kept))

        return SchemaMergeResult(
            schema_text="\n\n".join(sections) + "\n",
            models=models,
            enums=enums,
        )

    def _load(self, mapping: SchemaMapping) -> tuple[str, str, str | None]:
        """Return ``(text, label, resolved_path)`` for a fragment.

        Inline fragments have no path, so each one counts as its own
        declaration.
        """
        if "{" in mapping.source:
            return mapping.source, f"{mapping.model} (inline)", None

        source = mapping.source.replace("\\", "/")
        if source.startswith(("modules/", "core/")):
            path = self.project_root / source
        else:
            path = self.core_path / source
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise FragmentSourceError(mapping.model, mapping.source, str(exc)) from exc
        return text, mapping.source, str(path.resolve())


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def merge_schemas(
    base_schema_text: str,
    fragments: Iterable[SchemaMapping],
    project_root: str | Path | None = None,
    core_path: str | Path | None = None,
) -> str:
    """Merge fragments into the base schema and return the schema text."""
    return SchemaMerger(project_root, core_path).merge(base_schema_text, fragments).schema_text


def collect_schema_mappings(features: Iterable[FeatureSpec]) -> list[SchemaMapping]:
    """Flatten every feature's ``schema_mappings`` in resolution order."""
    mappings: list[SchemaMapping] = []
    for feature in features:
        mappings.extend(feature.schema_mappings or [])
    return mappings


def validate_schema_completeness(result: SchemaMergeResult, required_models: Iterable[str]) -> SchemaCompleteness:
    """Report which of *required_models* the merged schema does not declare."""
    declared = set(result.models)
    missing = [name for name in required_models if name not in declared]
    return SchemaCompleteness(valid=not missing, missing=missing)


def generate_base_schema(base_schema_text: str) -> str:
    """Normalise a base schema into preamble, ``// MODELS`` and ``// ENUMS`` sections."""
    blocks = parse_schema_blocks(base_schema_text)
    preamble = [b.text for b in blocks if b.kind in PREAMBLE_KINDS] or [DEFAULT_PREAMBLE]
    models = [b.text for b in blocks if b.kind in NAMED_KINDS and b.kind != "enum"]
    enums = [b.text for b in blocks if b.kind == "enum"]

    rule = "// " + "=" * 60
    parts = ["\n\n".join(preamble)]
    parts.append(f"{rule}\n// MODELS\n{rule}")
    parts.extend(models)
    parts.append(f"{rule}\n// ENUMS\n{rule}")
    parts.extend(enums)
    return "\n\n".join(parts) + "\n"
