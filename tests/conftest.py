"""Shared pytest fixtures for the LaunchKit test suite.

Provides reusable fixtures for:
- Feature records and an in-memory catalog
- Orders with and without template/license
- A temporary project root holding core/ and modules/ trees
- A fixed generation timestamp
"""

from __future__ import annotations

import json
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from launchkit.catalog_client import InMemoryCatalog
from launchkit.config import GeneratorConfig
from launchkit.models import FeatureSpec, OrderDetails


# ---------------------------------------------------------------------------
# Feature records
# ---------------------------------------------------------------------------


def make_feature(slug: str, requires: list[str] | None = None, **overrides: Any) -> FeatureSpec:
    """Build a FeatureSpec with sensible defaults for tests."""
    module_slug = slug.split(".")[0]
    data: dict[str, Any] = {
        "slug": slug,
        "name": overrides.pop("name", slug.replace(".", " ").title()),
        "description": overrides.pop("description", f"{slug} feature"),
        "module": overrides.pop(
            "module", {"slug": module_slug, "name": module_slug.title(), "category": "general"}
        ),
        "requires": requires or [],
    }
    data.update(overrides)
    return FeatureSpec.model_validate(data)


@pytest.fixture
def feature_factory():
    """The ``make_feature`` helper as a fixture."""
    return make_feature


@pytest.fixture
def chain_features() -> list[FeatureSpec]:
    """``oauth -> auth -> core`` plus an unrelated ``blog`` feature."""
    return [
        make_feature("core"),
        make_feature("auth", ["core"]),
        make_feature("oauth", ["auth"]),
        make_feature("blog"),
    ]


@pytest.fixture
def catalog(chain_features: list[FeatureSpec]) -> InMemoryCatalog:
    return InMemoryCatalog(chain_features)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture
def order_data() -> dict[str, Any]:
    """Order JSON as the host would send it (camelCase keys)."""
    return {
        "id": "order-1",
        "orderNumber": "LK-1001",
        "tier": "pro",
        "selectedFeatures": ["auth.social"],
        "customerEmail": "ada@example.com",
        "customerName": "Ada Lovelace",
        "total": 299.0,
        "template": {
            "name": "SaaS Starter",
            "slug": "saas",
            "includedFeatures": ["payments.stripe"],
        },
        "license": {
            "id": "lic-1",
            "licenseKey": "LK-KEY-1234",
            "downloadToken": "tok",
            "downloadCount": 0,
            "maxDownloads": 5,
            "status": "active",
        },
    }


@pytest.fixture
def order(order_data: dict[str, Any]) -> OrderDetails:
    return OrderDetails.model_validate(order_data)


@pytest.fixture
def bare_order() -> OrderDetails:
    """An order with no template, no license and no customer name."""
    return OrderDetails(
        id="order-2",
        order_number="LK-1002",
        tier="enterprise",
        selected_features=[],
        customer_email="grace@example.com",
    )


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 3, 14, 15, 9, 26, 535000, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Project root on disk
# ---------------------------------------------------------------------------


BASE_SCHEMA = textwrap.dedent("""\
    generator client {
      provider = "prisma-client-js"
    }

    datasource db {
      provider = "postgresql"
      url      = env("DATABASE_URL")
    }

    model User {
      id    String @id @default(cuid())
      email String @unique
      role  Role   @default(USER)
    }

    enum Role {
      USER
      ADMIN
    }
""")


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """A project root with a small core tree and two feature modules.

    Layout::

        core/backend/{package.json, src/app.ts, src/config.ts, prisma/schema.prisma, .env.example}
        core/backend/{.env, node_modules/, debug.log}        (must be excluded)
        core/web/{package.json, src/app/page.tsx, _preview/, preview-banner.tsx}
        modules/auth/...      social login files and a Session schema fragment
        modules/payments/...  stripe files, a template-transformed file
    """
    root = tmp_path / "project"
    core = root / "core"

    _write(core / "backend" / "package.json", json.dumps({
        "name": "core-backend",
        "version": "1.0.0",
        "private": True,
        "scripts": {"dev": "nodemon src/app.ts", "test": "vitest"},
        "dependencies": {"express": "^4.18.0", "zod": "^3.22.0"},
        "devDependencies": {"typescript": "^5.3.0"},
    }, indent=2))
    _write(core / "backend" / "src" / "app.ts", "export const app = 'core';\n")
    _write(core / "backend" / "src" / "config.ts", "export const config = 'core';\n")
    _write(core / "backend" / "prisma" / "schema.prisma", BASE_SCHEMA)
    _write(core / "backend" / ".env.example", "PORT=8000\n")
    _write(core / "backend" / ".env", "SECRET=do-not-ship\n")
    _write(core / "backend" / "node_modules" / "express" / "index.js", "module.exports = {};\n")
    _write(core / "backend" / "debug.log", "noise\n")

    _write(core / "web" / "package.json", json.dumps({
        "name": "core-web",
        "version": "1.0.0",
        "dependencies": {"next": "14.1.0", "react": "^18.2.0"},
    }, indent=2))
    _write(core / "web" / "src" / "app" / "page.tsx", "export default function Page() {}\n")
    _write(core / "web" / "src" / "_preview" / "frame.tsx", "preview only\n")
    _write(core / "web" / "src" / "components" / "preview-banner.tsx", "preview only\n")

    auth = root / "modules" / "auth"
    _write(auth / "backend" / "src" / "social.ts", "export const social = true;\n")
    _write(auth / "backend" / "src" / "config.ts", "export const config = 'auth';\n")
    _write(auth / "prisma" / "session.prisma", textwrap.dedent("""\
        model Session {
          id     String @id
          userId String
        }
    """))

    payments = root / "modules" / "payments"
    _write(payments / "backend" / "src" / "stripe" / "client.ts", "export const stripe = {};\n")
    _write(payments / "backend" / "src" / "stripe" / "webhook.ts", "export const webhook = {};\n")
    _write(payments / "backend" / "src" / "config.ts", "export const config = 'payments';\n")
    _write(payments / "backend" / "src" / "brand.ts", "export const brand = '{{ brand_name }}:{{ tier }}';\n")
    _write(payments / "prisma" / "payment.prisma", textwrap.dedent("""\
        model Payment {
          id     String @id
          amount Int
          status PaymentStatus
        }

        enum PaymentStatus {
          PENDING
          PAID
        }
    """))
    return root


@pytest.fixture
def generator_config(project_root: Path, tmp_path: Path) -> GeneratorConfig:
    return GeneratorConfig(project_root=project_root, output_dir=tmp_path / "out")


@pytest.fixture
def project_features() -> list[FeatureSpec]:
    """Catalog for the on-disk project root."""
    return [
        make_feature(
            "auth.basic",
            module={"slug": "auth", "name": "Auth", "category": "security"},
            env_vars=[
                {"key": "SESSION_SECRET", "description": "Session signing key", "required": True},
            ],
            npm_packages=[{"name": "bcrypt", "version": "^5.1.0"}],
        ),
        make_feature(
            "auth.social",
            ["auth.basic"],
            module={"slug": "auth", "name": "Auth", "category": "security"},
            file_mappings=[
                {"source": "modules/auth/backend/src/social.ts", "destination": "backend/src/social.ts"},
                {"source": "modules/auth/backend/src/config.ts", "destination": "backend/src/config.ts"},
            ],
            schema_mappings=[{"model": "Session", "source": "modules/auth/prisma/session.prisma"}],
            npm_packages=[
                {"name": "passport", "version": "^0.7.0"},
                {"name": "zod", "version": "^3.23.0"},
            ],
            npm_scripts={"auth:keys": "tsx scripts/keys.ts"},
        ),
        make_feature(
            "payments.stripe",
            module={"slug": "payments", "name": "Payments", "category": "billing"},
            file_mappings=[
                {"source": "modules/payments/backend/src/stripe", "destination": "backend/src/stripe"},
                {"source": "modules/payments/backend/src/config.ts", "destination": "backend/src/config.ts"},
                {
                    "source": "modules/payments/backend/src/brand.ts",
                    "destination": "backend/src/brand.ts",
                    "transform": "template",
                },
            ],
            schema_mappings=[{"model": "Payment", "source": "modules/payments/prisma/payment.prisma"}],
            env_vars=[
                {"key": "STRIPE_SECRET_KEY", "description": "Stripe API key", "required": True},
                {"key": "STRIPE_CURRENCY", "description": "Default currency", "default": "usd"},
            ],
            npm_packages=[
                {"name": "stripe", "version": "^14.0.0"},
                {"name": "@stripe/stripe-js", "version": "^2.4.0", "platform": "web"},
                {"name": "stripe-event-types", "version": "^3.0.0", "dev": True},
            ],
        ),
    ]


@pytest.fixture
def project_catalog(project_features: list[FeatureSpec]) -> InMemoryCatalog:
    return InMemoryCatalog(project_features)
