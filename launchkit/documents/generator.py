"""Generated project documents.

Renders the text artifacts shipped at the top of every download:
``backend/.env.example``, ``LICENSE.md``, ``README.md`` and
``starter-config.json``.  Every document is a pure function of the order,
the resolved features and the ``generated_at`` timestamp, so the same
inputs always produce the same bytes.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Optional

from launchkit.models import FeatureSpec, OrderDetails
from launchkit.templates import TemplateRenderer
from launchkit.utils import capitalize_first, iso_timestamp, utc_now


DEFAULT_TEMPLATE_NAME = "Custom Configuration"
DEFAULT_TEMPLATE_SLUG = "starter"


class DocumentGenerator:
    """Renders per-order documents with the configured branding."""

    def __init__(
        self,
        brand_name: str = "LaunchKit",
        renderer: TemplateRenderer | None = None,
        brand_url: str = "https://launchkit.dev",
        docs_url: str = "https://docs.launchkit.dev",
    ) -> None:
        self.brand_name = brand_name
        self.brand_url = brand_url
        self.docs_url = docs_url
        self.renderer = renderer or TemplateRenderer()

    def _context(self, **extra: Any) -> dict[str, Any]:
        context = {
            "brand_name": self.brand_name,
            "brand_url": self.brand_url,
            "docs_url": self.docs_url,
        }
        context.update(extra)
        return context

    # ------------------------------------------------------------------
    # .env.example
    # ------------------------------------------------------------------

    def generate_env_example(self, features: Iterable[FeatureSpec]) -> str:
        """Core variables followed by one section per feature with env vars.

        Features whose ``env_vars`` is null or empty contribute nothing.
        """
        groups = [
            {"name": feature.display_name, "env_vars": feature.env_vars}
            for feature in features
            if feature.env_vars
        ]
        return self.renderer.render("env.example.j2", self._context(groups=groups))

    # ------------------------------------------------------------------
    # LICENSE.md
    # ------------------------------------------------------------------

    def generate_license(self, order: OrderDetails, generated_at: Optional[datetime] = None) -> str:
        issued = generated_at or utc_now()
        return self.renderer.render(
            "LICENSE.md.j2",
            self._context(
                order=order,
                license_key=order.license.license_key if order.license else "N/A",
                licensee=order.customer_name or order.customer_email,
                issue_date=iso_timestamp(issued)[:10],
            ),
        )

    # ------------------------------------------------------------------
    # README.md
    # ------------------------------------------------------------------

    def generate_readme(
        self,
        order: OrderDetails,
        features: Iterable[FeatureSpec],
        generated_at: Optional[datetime] = None,
    ) -> str:
        """Render the README with features grouped by module category.

        Categories appear in first-seen order; features keep resolution
        order inside their category.
        """
        categories: dict[str, list[FeatureSpec]] = {}
        for feature in features:
            categories.setdefault(feature.module.category, []).append(feature)

        return self.renderer.render(
            "README.md.j2",
            self._context(
                order=order,
                template_name=order.template.name if order.template else DEFAULT_TEMPLATE_NAME,
                generated_at=iso_timestamp(generated_at or utc_now()),
                categories=[
                    {"label": capitalize_first(category), "features": members}
                    for category, members in categories.items()
                ],
            ),
        )

    # ------------------------------------------------------------------
    # starter-config.json
    # ------------------------------------------------------------------

    def generate_config(
        self,
        order: OrderDetails,
        features: Iterable[FeatureSpec],
        generated_at: Optional[datetime] = None,
    ) -> str:
        """Render the machine-readable project config.

        The key order and nesting are fixed; downstream tooling reads them.
        """
        timestamp = iso_timestamp(generated_at or utc_now())
        config = {
            "tier": order.tier,
            "template": order.template.slug if order.template else None,
            "features": [feature.slug for feature in features],
            "license": {
                "key": order.license.license_key if order.license else None,
                "orderNumber": order.order_number,
                "customerEmail": order.customer_email,
                "issuedAt": timestamp,
            },
            "generatedAt": timestamp,
        }
        return json.dumps(config, indent=2, ensure_ascii=False)


def generate_project_name(order: OrderDetails) -> str:
    """``<template-slug>-<tier>``, with ``starter`` when there is no template."""
    template_slug = order.template.slug if order.template else DEFAULT_TEMPLATE_SLUG
    return f"{template_slug}-{order.tier}"


# ---------------------------------------------------------------------------
# Module-level wrappers
# ---------------------------------------------------------------------------

def generate_env_example(features: Iterable[FeatureSpec], brand_name: str = "LaunchKit") -> str:
    return DocumentGenerator(brand_name).generate_env_example(features)


def generate_license(
    order: OrderDetails,
    generated_at: Optional[datetime] = None,
    brand_name: str = "LaunchKit",
) -> str:
    return DocumentGenerator(brand_name).generate_license(order, generated_at)


def generate_readme(
    order: OrderDetails,
    features: Iterable[FeatureSpec],
    generated_at: Optional[datetime] = None,
    brand_name: str = "LaunchKit",
) -> str:
    return DocumentGenerator(brand_name).generate_readme(order, features, generated_at)


def generate_config(
    order: OrderDetails,
    features: Iterable[FeatureSpec],
    generated_at: Optional[datetime] = None,
) -> str:
    return DocumentGenerator().generate_config(order, features, generated_at)
