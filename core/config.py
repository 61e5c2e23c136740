"""Configuration for the reconciliation engine.

Thresholds are plain frozen dataclasses so a test or a tenant can override a
single value with dataclasses.replace(). Process-level settings are read from
the environment (and a local .env file) with RECON_* variable names.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# =============================================================================
# Safety Thresholds
# =============================================================================

@dataclass(frozen=True)
class ReconciliationThresholds:
    """Safety thresholds applied when planning writes to an order.

    Conservative on purpose: escalating a safe change costs a click, applying
    a bad one corrupts the order.
    """
    # Per-line price change at or below this percentage applies automatically
    auto_approve_percent: Decimal = Decimal("3")

    # invoice/po ratio at or beyond this multiple (either way) is a decimal error
    magnitude_ceiling: Decimal = Decimal("10")

    # Aggregate order exposure above which safe price lines are escalated
    total_impact_cap: Decimal = Decimal("500")

    # Unit prices above this always need a human
    high_value_threshold: Decimal = Decimal("5000")

    # Fee delta (invoice fee minus existing order fee) that can auto-apply
    fee_auto_approve_cap: Decimal = Decimal("250")

    # Jaccard word overlap for vendor name correlation
    vendor_fuzzy_threshold: Decimal = Decimal("0.5")

    # Share of invoice SKUs that must appear on the order
    sku_overlap_threshold: Decimal = Decimal("0.5")

    # Prices closer than this are equal
    price_epsilon: Decimal = Decimal("0.01")

    # Characters of description compared when matching lines
    description_prefix: int = 30

    # Pending approvals expire after this long
    approval_ttl: timedelta = timedelta(hours=24)


DEFAULT_THRESHOLDS = ReconciliationThresholds()


# =============================================================================
# Process Settings
# =============================================================================

def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_decimal(name: str, default: Decimal) -> Decimal:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return Decimal(value.strip())


@dataclass
class Settings:
    """Runtime settings for the worker and API processes."""
    thresholds: ReconciliationThresholds = field(default_factory=ReconciliationThresholds)
    connector_type: str = "memory"
    log_level: str = "INFO"
    json_logs: bool = False
    audit_dir: Optional[Path] = None
    task_queue: str = "recon-default"
    approval_sweep_seconds: float = 300.0

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """Build settings from RECON_* environment variables.

        A .env file next to the project root (or the given path) is loaded
        first; variables already set in the environment win.
        """
        env_path = env_file or Path(__file__).parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        defaults = DEFAULT_THRESHOLDS
        ttl_hours = os.getenv("RECON_APPROVAL_TTL_HOURS")

        thresholds = ReconciliationThresholds(
            auto_approve_percent=_env_decimal("RECON_AUTO_APPROVE_PERCENT", defaults.auto_approve_percent),
            magnitude_ceiling=_env_decimal("RECON_MAGNITUDE_CEILING", defaults.magnitude_ceiling),
            total_impact_cap=_env_decimal("RECON_TOTAL_IMPACT_CAP", defaults.total_impact_cap),
            high_value_threshold=_env_decimal("RECON_HIGH_VALUE_THRESHOLD", defaults.high_value_threshold),
            fee_auto_approve_cap=_env_decimal("RECON_FEE_AUTO_APPROVE_CAP", defaults.fee_auto_approve_cap),
            vendor_fuzzy_threshold=_env_decimal("RECON_VENDOR_FUZZY_THRESHOLD", defaults.vendor_fuzzy_threshold),
            approval_ttl=timedelta(hours=float(ttl_hours)) if ttl_hours else defaults.approval_ttl,
        )

        audit_dir = os.getenv("RECON_AUDIT_DIR")

        return cls(
            thresholds=thresholds,
            connector_type=os.getenv("RECON_CONNECTOR", "memory"),
            log_level=os.getenv("RECON_LOG_LEVEL", "INFO").upper(),
            json_logs=_env_bool("RECON_JSON_LOGS", False),
            audit_dir=Path(audit_dir) if audit_dir else None,
            task_queue=os.getenv("RECON_TASK_QUEUE", "recon-default"),
            approval_sweep_seconds=float(os.getenv("RECON_APPROVAL_SWEEP_SECONDS", "300")),
        )
