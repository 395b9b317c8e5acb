"""Flag and experiment catalogs.

Holds the storefront's predefined flags and experiments, the extra entries
only served in development, and loading of catalog files (YAML or JSON with
top-level ``flags`` and ``experiments`` lists).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from shopflags.core.conditions import Condition, ConditionOperator
from shopflags.core.context import utcnow
from shopflags.core.errors import ConfigurationError, ErrorCode
from shopflags.core.experiments.models import Experiment, ExperimentStatus, Targeting, Variant
from shopflags.core.feature_flags.flag import FeatureFlag, FlagCondition, FlagConditionType

logger = logging.getLogger(__name__)

DEVELOPMENT = "development"


def _predefined_flags() -> List[FeatureFlag]:
    return [
        FeatureFlag(
            key="new-user-dashboard",
            name="New User Dashboard",
            description="Enable new dashboard design for users",
            enabled=True,
            rollout=50,
            conditions=[
                FlagCondition(FlagConditionType.USER_ROLE, ConditionOperator.IN, ["admin", "user"]),
            ],
        ),
        FeatureFlag(
            key="advanced-search",
            name="Advanced Search Feature",
            description="Enable advanced search functionality",
            enabled=False,
        ),
        FeatureFlag(
            key="new-product-details",
            name="New Product Details Page",
            description="Enable redesigned product details page",
            enabled=True,
            rollout=30,
            start_date="2025-01-01",
            end_date="2025-12-31",
        ),
        FeatureFlag(
            key="checkout-optimization",
            name="Optimized Checkout Flow",
            description="Enable streamlined checkout process",
            enabled=True,
            rollout=75,
            conditions=[
                FlagCondition(
                    FlagConditionType.ENVIRONMENT, ConditionOperator.IN, ["production", "staging"]
                ),
            ],
        ),
        FeatureFlag(
            key="mobile-app-banner",
            name="Mobile App Download Banner",
            description="Show mobile app download banner",
            enabled=True,
            conditions=[
                FlagCondition(FlagConditionType.USER_ROLE, ConditionOperator.NOT_IN, ["guest"]),
            ],
        ),
    ]


def _development_flags() -> List[FeatureFlag]:
    return [
        FeatureFlag(
            key="debug-mode",
            name="Debug Mode",
            description="Enable debug information display",
            enabled=True,
            conditions=[
                FlagCondition(FlagConditionType.ENVIRONMENT, ConditionOperator.EQUALS, DEVELOPMENT),
            ],
        ),
        FeatureFlag(
            key="feature-testing",
            name="Feature Testing Mode",
            description="Enable experimental features for testing",
            enabled=True,
            conditions=[
                FlagCondition(FlagConditionType.USER_ROLE, ConditionOperator.EQUALS, "admin"),
            ],
        ),
    ]


def _predefined_experiments() -> List[Experiment]:
    return [
        Experiment(
            id="checkout-optimization-v1",
            name="Checkout Flow Optimization",
            description="Test simplified vs detailed checkout process",
            status=ExperimentStatus.RUNNING,
            variants=[
                Variant(
                    id="control",
                    name="Original Checkout",
                    weight=50,
                    config={
                        "checkout_type": "original",
                        "show_progress_bar": True,
                        "show_guest_checkout": False,
                    },
                    description="Current checkout flow",
                ),
                Variant(
                    id="simplified",
                    name="Simplified Checkout",
                    weight=50,
                    config={
                        "checkout_type": "simplified",
                        "show_progress_bar": False,
                        "show_guest_checkout": True,
                        "one_page_checkout": True,
                    },
                    description="Streamlined one-page checkout",
                ),
            ],
            targeting=Targeting(
                user_roles=["user", "premium"],
                device_types=["desktop", "mobile"],
                # cart value in KRW
                custom_conditions=[Condition("cart_value", ConditionOperator.GREATER_THAN, 50000)],
            ),
            metrics=["conversion_rate", "cart_abandonment", "time_to_purchase"],
            start_date="2025-01-01",
            end_date="2025-03-01",
            traffic_allocation=80,
            hypothesis="Simplified checkout will reduce cart abandonment by 15%",
            success_criteria="Increase conversion rate by at least 10%",
        ),
        Experiment(
            id="product-recommendation-v2",
            name="AI vs Rule-based Recommendations",
            description="Compare AI-powered vs rule-based product recommendations",
            status=ExperimentStatus.RUNNING,
            variants=[
                Variant(
                    id="rule_based",
                    name="Rule-based Recommendations",
                    weight=40,
                    config={
                        "algorithm": "rule_based",
                        "max_recommendations": 6,
                        "show_price_first": True,
                    },
                ),
                Variant(
                    id="ai_powered",
                    name="AI-powered Recommendations",
                    weight=60,
                    config={
                        "algorithm": "ai_ml",
                        "max_recommendations": 8,
                        "show_price_first": False,
                        "personalized_ranking": True,
                    },
                ),
            ],
            targeting=Targeting(
                user_roles=["user", "premium"],
                user_segments=["active_shoppers", "repeat_customers"],
            ),
            metrics=["click_through_rate", "add_to_cart_rate", "revenue_per_visitor"],
            start_date="2025-01-15",
            end_date="2025-04-15",
            traffic_allocation=100,
        ),
        Experiment(
            id="pricing-display-test",
            name="Pricing Display Format",
            description="Test different pricing display formats",
            status=ExperimentStatus.READY,
            variants=[
                Variant(
                    id="standard",
                    name="Standard Pricing",
                    weight=33,
                    config={
                        "price_format": "standard",
                        "show_original_price": True,
                        "currency_symbol": "₩",
                    },
                ),
                Variant(
                    id="emphasized",
                    name="Emphasized Discount",
                    weight=33,
                    config={
                        "price_format": "emphasized_discount",
                        "show_savings_amount": True,
                        "highlight_discount": True,
                    },
                ),
                Variant(
                    id="minimalist",
                    name="Minimalist Pricing",
                    weight=34,
                    config={
                        "price_format": "minimalist",
                        "show_original_price": False,
                        "clean_layout": True,
                    },
                ),
            ],
            targeting=Targeting(
                device_types=["desktop", "mobile"],
                geo_location=["KR", "JP", "US"],
            ),
            metrics=["conversion_rate", "average_order_value", "price_comparison_clicks"],
            start_date="2025-02-01",
            end_date="2025-03-31",
            traffic_allocation=60,
        ),
    ]


def _development_experiments() -> List[Experiment]:
    return [
        Experiment(
            id="dev-ui-testing",
            name="Development UI Testing",
            description="UI component testing in development",
            status=ExperimentStatus.RUNNING,
            variants=[
                Variant(id="current", name="Current UI", weight=50, config={"theme": "current"}),
                Variant(id="new", name="New UI", weight=50, config={"theme": "experimental"}),
            ],
            targeting=Targeting(user_roles=["admin", "developer"]),
            metrics=["user_satisfaction"],
            start_date="2025-01-01",
            traffic_allocation=100,
        ),
    ]


def get_all_feature_flags(environment: Optional[str] = None) -> List[FeatureFlag]:
    """Predefined flags, plus development-only flags in development."""
    flags = _predefined_flags()
    if environment == DEVELOPMENT:
        flags.extend(_development_flags())
    return flags


def get_all_experiments(environment: Optional[str] = None) -> List[Experiment]:
    """Predefined experiments, plus development-only experiments in development."""
    experiments = _predefined_experiments()
    if environment == DEVELOPMENT:
        experiments.extend(_development_experiments())
    return experiments


def filter_active_experiments(
    experiments: List[Experiment], now: Optional[datetime] = None
) -> List[Experiment]:
    now = now or utcnow()
    return [e for e in experiments if e.is_active(now)]


@dataclass
class Catalog:
    """Flags and experiments loaded from a catalog file."""

    flags: List[FeatureFlag] = field(default_factory=list)
    experiments: List[Experiment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flags": [f.to_dict() for f in self.flags],
            "experiments": [e.to_dict() for e in self.experiments],
        }


def _read_catalog_file(path: Path) -> Dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read catalog {path}: {e}", ErrorCode.CATALOG_LOAD_FAILED
        ) from e

    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content) or {}
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            # Try JSON first, then YAML
            try:
                data = json.loads(content)
            except json.JSONDecodeError:
                data = yaml.safe_load(content) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Cannot parse catalog {path}: {e}", ErrorCode.CATALOG_LOAD_FAILED
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Catalog {path} must be a mapping with 'flags' and 'experiments'",
            ErrorCode.CATALOG_LOAD_FAILED,
        )
    return data


def load_catalog(path: str) -> Catalog:
    """Load a catalog file.

    Raises:
        ConfigurationError: unreadable file or invalid definitions.
    """
    file_path = Path(path)
    data = _read_catalog_file(file_path)

    flags = [FeatureFlag.from_dict(item) for item in data.get("flags") or []]
    experiments = [Experiment.from_dict(item) for item in data.get("experiments") or []]

    _check_unique([f.key for f in flags], "flag key", file_path)
    _check_unique([e.id for e in experiments], "experiment id", file_path)

    logger.info(
        f"Loaded catalog from {file_path}: {len(flags)} flags, {len(experiments)} experiments"
    )
    return Catalog(flags=flags, experiments=experiments)


def _check_unique(ids: List[str], label: str, path: Path) -> None:
    seen = set()
    for item in ids:
        if item in seen:
            raise ConfigurationError(f"Duplicate {label} '{item}' in {path}")
        seen.add(item)
