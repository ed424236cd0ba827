"""Configuration loader: reads a lending YAML file, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from .access import AdministratorSet
from .core import (
    REFERENCE_ASSET_RATIO, REFERENCE_PRECISION,
    AccountId, AssetId, Clock, CustodyCollaborator, LendingError, LoanTerms,
)
from .engine import LendingEngine
from .registry import CollateralRegistry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetConfig:
    asset_id: AssetId = ""
    ratio: int = 0
    beneficiary: Optional[AccountId] = None
    precision: int = REFERENCE_PRECISION


@dataclass(frozen=True)
class LendingConfig:
    loan_terms: LoanTerms = field(default_factory=lambda: LoanTerms(0, 110))
    reference_asset: AssetId = "DAI"
    reference_ratio: int = REFERENCE_ASSET_RATIO
    governance_asset: Optional[AssetId] = None
    credit_asset: Optional[AssetId] = None
    treasury: AccountId = ""
    administrators: Tuple[AccountId, ...] = ()
    assets: Tuple[AssetConfig, ...] = ()
    verbose: bool = False


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML -> dataclass builders
# ---------------------------------------------------------------------------


def _as_int(raw: Any, name: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _build_loan_terms(raw: Dict[str, Any]) -> LoanTerms:
    try:
        return LoanTerms(
            yearly_interest_percent=_as_int(raw.get("yearly_interest_percent", 0), "yearly_interest_percent"),
            default_threshold_percent=_as_int(raw.get("default_threshold_percent", 110), "default_threshold_percent"),
        )
    except LendingError as e:
        raise ValueError(f"Invalid loan_terms: {e}") from e


def _build_assets(raw: list) -> Tuple[AssetConfig, ...]:
    assets = []
    for a in raw:
        asset_id = str(a.get("asset_id", ""))
        assets.append(
            AssetConfig(
                asset_id=asset_id,
                ratio=_as_int(a.get("ratio", 0), f"assets[{asset_id}].ratio"),
                beneficiary=a.get("beneficiary") or None,
                precision=_as_int(a.get("precision", REFERENCE_PRECISION), f"assets[{asset_id}].precision"),
            )
        )
    return tuple(assets)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: Union[str, Path]) -> LendingConfig:
    """Load and validate a lending configuration from YAML + .env.

    Example file::

        loan_terms:
          yearly_interest_percent: 20
          default_threshold_percent: 110
        reference_asset: DAI
        governance_asset: CORE
        treasury: "${TREASURY_ADDRESS}"
        administrators: [owner]
        assets:
          - {asset_id: CORE, ratio: 5500, beneficiary: treasury}

    Raises:
        FileNotFoundError: config_path does not exist
        ValueError: a value is missing or invalid
    """
    load_dotenv()

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = LendingConfig(
        loan_terms=_build_loan_terms(raw.get("loan_terms", {})),
        reference_asset=str(raw.get("reference_asset", "DAI")),
        reference_ratio=_as_int(raw.get("reference_ratio", REFERENCE_ASSET_RATIO), "reference_ratio"),
        governance_asset=raw.get("governance_asset") or None,
        credit_asset=raw.get("credit_asset") or None,
        treasury=str(raw.get("treasury", "")),
        administrators=tuple(str(a) for a in raw.get("administrators", [])),
        assets=_build_assets(raw.get("assets", [])),
        verbose=bool(raw.get("verbose", False)),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: LendingConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.reference_asset:
        raise ValueError("reference_asset must be configured")
    if not cfg.treasury:
        raise ValueError("treasury must be configured")
    if not cfg.administrators:
        raise ValueError("At least one administrator must be configured")
    if cfg.reference_ratio <= 0:
        raise ValueError("reference_ratio must be positive")

    seen = {cfg.reference_asset}
    for asset in cfg.assets:
        if not asset.asset_id:
            raise ValueError("Asset entry has no asset_id")
        if asset.asset_id in seen:
            raise ValueError(f"Asset '{asset.asset_id}' configured more than once")
        if asset.ratio <= 0:
            raise ValueError(f"Asset '{asset.asset_id}' must have a positive ratio")
        seen.add(asset.asset_id)


def build_engine(
    cfg: LendingConfig,
    custody: CustodyCollaborator,
    clock: Clock,
) -> LendingEngine:
    """Wire registry, authorizer and engine from a LendingConfig.

    The governance and credit assets are protected from beneficiary changes.
    The reference asset is registered first, then every configured asset, each
    through the engine so the audit log records the initial setup.
    """
    protected = [a for a in (cfg.governance_asset, cfg.credit_asset) if a]
    registry = CollateralRegistry(protected_assets=protected)
    administrators = AdministratorSet(cfg.administrators)
    engine = LendingEngine(
        registry=registry,
        terms=cfg.loan_terms,
        custody=custody,
        authorizer=administrators,
        clock=clock,
        reference_asset=cfg.reference_asset,
        treasury=cfg.treasury,
        verbose=cfg.verbose,
    )

    admin = cfg.administrators[0]
    engine.add_asset(admin, cfg.reference_asset, cfg.treasury, cfg.reference_ratio)
    for asset in cfg.assets:
        engine.add_asset(admin, asset.asset_id, asset.beneficiary, asset.ratio, asset.precision)

    logger.info(
        "Lending engine built: reference=%s, %d collateral asset(s)",
        cfg.reference_asset, len(cfg.assets),
    )
    return engine
