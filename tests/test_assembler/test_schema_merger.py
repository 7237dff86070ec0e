"""Tests for Prisma schema merging (launchkit.assembler.schema_merger).

Covers:
- Block parsing (models, enums, braces in strings and comments)
- Concatenation of distinct fragments in order
- DuplicateModelError for base/fragment and fragment/fragment collisions
- Default preamble for empty bases
- Fragment files, inline fragments and shared-file de-duplication
- Completeness validation and base schema normalisation
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from launchkit.assembler.schema_merger import (
    DEFAULT_PREAMBLE,
    SchemaMerger,
    collect_schema_mappings,
    generate_base_schema,
    merge_schemas,
    parse_schema_blocks,
    validate_schema_completeness,
)
from launchkit.errors import DuplicateModelError, FragmentSourceError, SchemaSyntaxError
from launchkit.models import SchemaMapping


pytestmark = pytest.mark.unit


ORDER_MODEL = textwrap.dedent("""\
    model Order {
      id    String @id
      total Int
    }
""")

INVOICE_MODEL = textwrap.dedent("""\
    model Invoice {
      id      String @id
      orderId String
    }
""")


def inline(model: str, text: str) -> SchemaMapping:
    return SchemaMapping(model=model, source=text)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseSchemaBlocks:
    def test_kinds_and_names(self):
        text = textwrap.dedent("""\
            datasource db {
              provider = "postgresql"
            }

            model User {
              id String @id
            }

            enum Role {
              USER
            }
        """)

        blocks = parse_schema_blocks(text)
        assert [(b.kind, b.name) for b in blocks] == [
            ("datasource", "db"),
            ("model", "User"),
            ("enum", "Role"),
        ]

    def test_braces_in_strings_and_comments(self):
        text = textwrap.dedent("""\
            model Template {
              id   String @id
              body String @default("{ not a block }")
              // closing brace in a comment }
            }

            model Next {
              id String @id
            }
        """)

        blocks = parse_schema_blocks(text)
        assert [b.name for b in blocks] == ["Template", "Next"]
        assert blocks[0].text.endswith("}")
        assert "not a block" in blocks[0].text

    def test_unterminated_block(self):
        with pytest.raises(SchemaSyntaxError) as exc_info:
            parse_schema_blocks("model Broken {\n  id String @id\n", "broken.prisma")
        assert exc_info.value.identifiers == ["Broken", "broken.prisma"]

    def test_free_comments_ignored(self):
        assert parse_schema_blocks("// just a comment\n") == []


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


class TestMerge:
    def test_distinct_fragments_concatenate_in_order(self):
        merged = merge_schemas(
            "",
            [inline("Order", ORDER_MODEL), inline("Invoice", INVOICE_MODEL)],
        )

        assert "model Order {" in merged
        assert "model Invoice {" in merged
        assert merged.index("model Order") < merged.index("model Invoice")

    def test_base_comes_first_and_is_kept_verbatim(self):
        base = 'generator client {\n  provider = "prisma-client-js"\n}\n\nmodel User {\n  id String @id\n}\n'
        merged = merge_schemas(base, [inline("Order", ORDER_MODEL)])

        assert merged.startswith(base.strip())
        assert merged.endswith("}\n")
        assert merged.count("generator client") == 1

    def test_empty_base_gets_default_preamble(self):
        merged = merge_schemas("", [inline("Order", ORDER_MODEL)])
        assert merged.startswith(DEFAULT_PREAMBLE)

    def test_fragment_sections_are_labelled(self):
        merged = merge_schemas("", [inline("Order", ORDER_MODEL)])
        assert "// ---- Order (inline) ----" in merged

    def test_result_lists_models_and_enums(self):
        base = "enum Role {\n  USER\n}\n"
        result = SchemaMerger().merge(base, [inline("Order", ORDER_MODEL)])

        assert result.models == ["Order"]
        assert result.enums == ["Role"]

    def test_fragment_generator_blocks_are_dropped(self):
        fragment = 'generator extra {\n  provider = "x"\n}\n\n' + ORDER_MODEL
        result = SchemaMerger().merge("", [inline("Order", fragment)])
        assert "generator extra" not in result.schema_text

    def test_repeated_inline_fragment_collides(self):
        with pytest.raises(DuplicateModelError) as exc_info:
            SchemaMerger().merge("", [inline("Order", ORDER_MODEL), inline("Order", ORDER_MODEL)])
        assert exc_info.value.name == "Order"


class TestDuplicates:
    def test_fragment_collides_with_base(self):
        base = "model Order {\n  id String @id\n}\n"

        with pytest.raises(DuplicateModelError) as exc_info:
            merge_schemas(base, [inline("Order", ORDER_MODEL)])

        err = exc_info.value
        assert err.name == "Order"
        assert err.first_source == "base schema"
        assert err.second_source == "Order (inline)"
        assert err.identifiers == ["Order"]

    def test_two_fragments_collide(self):
        other = "model Order {\n  id   String @id\n  note String\n}\n"

        with pytest.raises(DuplicateModelError) as exc_info:
            merge_schemas("", [inline("Order", ORDER_MODEL), inline("Order", other)])

        assert exc_info.value.kind == "duplicate_model"

    def test_enum_and_model_share_namespace(self):
        with pytest.raises(DuplicateModelError):
            merge_schemas("enum Status {\n  A\n}\n", [inline("Status", "model Status {\n  id Int @id\n}\n")])


# ---------------------------------------------------------------------------
# Fragment files
# ---------------------------------------------------------------------------


class TestFragmentFiles:
    def test_module_relative_paths(self, project_root: Path):
        merger = SchemaMerger(project_root)
        result = merger.merge("", [
            SchemaMapping(model="Session", source="modules/auth/prisma/session.prisma"),
            SchemaMapping(model="Payment", source="modules/payments/prisma/payment.prisma"),
        ])

        assert result.models == ["Session", "Payment"]
        assert result.enums == ["PaymentStatus"]
        assert "// ---- modules/auth/prisma/session.prisma ----" in result.schema_text

    def test_core_relative_legacy_path(self, project_root: Path):
        (project_root / "core" / "extra.prisma").write_text(ORDER_MODEL, encoding="utf-8")
        result = SchemaMerger(project_root).merge("", [SchemaMapping(model="Order", source="extra.prisma")])
        assert result.models == ["Order"]

    def test_same_file_twice_merged_once(self, project_root: Path):
        mapping = SchemaMapping(model="Session", source="modules/auth/prisma/session.prisma")
        result = SchemaMerger(project_root).merge("", [mapping, mapping])
        assert result.models == ["Session"]

    def test_missing_file(self, project_root: Path):
        with pytest.raises(FragmentSourceError) as exc_info:
            SchemaMerger(project_root).merge(
                "", [SchemaMapping(model="Ghost", source="modules/ghost/ghost.prisma")]
            )
        assert exc_info.value.identifiers == ["Ghost", "modules/ghost/ghost.prisma"]

    def test_collect_schema_mappings_keeps_feature_order(self, project_features):
        mappings = collect_schema_mappings([project_features[2], project_features[0], project_features[1]])
        assert [m.model for m in mappings] == ["Payment", "Session"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestValidateCompleteness:
    def test_all_present(self):
        result = SchemaMerger().merge("", [inline("Order", ORDER_MODEL)])
        check = validate_schema_completeness(result, ["Order"])
        assert check.valid is True
        assert check.missing == []

    def test_reports_missing(self):
        result = SchemaMerger().merge("", [inline("Order", ORDER_MODEL)])
        check = validate_schema_completeness(result, ["Order", "Invoice", "User"])
        assert check.valid is False
        assert check.missing == ["Invoice", "User"]


class TestGenerateBaseSchema:
    def test_sections(self):
        text = "enum Role {\n  USER\n}\n\n" + ORDER_MODEL
        schema = generate_base_schema(text)

        assert schema.startswith(DEFAULT_PREAMBLE)
        assert schema.index("// MODELS") < schema.index("model Order")
        assert schema.index("// ENUMS") < schema.index("enum Role")
        assert schema.endswith("}\n")

    def test_keeps_existing_preamble(self):
        text = 'datasource db {\n  provider = "sqlite"\n}\n'
        schema = generate_base_schema(text)
        assert 'provider = "sqlite"' in schema
        assert "prisma-client-js" not in schema
