"""
registry.py - Collateral Registry

Lookup/mutation table of accepted collateral assets: their collaterability
ratio, retirement flag and liquidation beneficiary. No time dependence.

The registry validates and applies changes; it does not check authorization
or write audit records. LendingEngine does both around every mutation.
"""

from __future__ import annotations
from dataclasses import replace
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .core import (
    AccountId, AssetId, CollateralAsset,
    BURN_ADDRESS, NULL_ADDRESS, REFERENCE_PRECISION,
    AlreadyRegistered, InvalidRatio, ProtectedAsset, UnknownAsset,
    UnsupportedPrecision, _require_int,
)

logger = logging.getLogger(__name__)


def _resolve_beneficiary(beneficiary: Optional[AccountId]) -> AccountId:
    """Substitute the burn sentinel for a missing or null beneficiary."""
    if not beneficiary or beneficiary == NULL_ADDRESS:
        return BURN_ADDRESS
    return beneficiary


class CollateralRegistry:
    """
    Registry of collateral assets.

    Assets are never deleted. Setting an asset's ratio to zero retires it;
    retirement is permanent, so a later non-zero ratio re-values existing
    balances but does not reopen deposits.

    Args:
        protected_assets: Assets whose liquidation beneficiary is fixed at
            the burn sentinel (the credit-generating asset and the governance
            asset). Systemic backing depends on their collateral staying
            out of circulation.
    """

    def __init__(self, protected_assets: Iterable[AssetId] = ()):
        self._assets: Dict[AssetId, CollateralAsset] = {}
        self._protected: FrozenSet[AssetId] = frozenset(protected_assets)

    @property
    def protected_assets(self) -> FrozenSet[AssetId]:
        return self._protected

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def add_asset(
        self,
        asset_id: AssetId,
        beneficiary: Optional[AccountId],
        ratio: int,
        precision: int = REFERENCE_PRECISION,
    ) -> CollateralAsset:
        """
        Register a new non-retired asset.

        Raises:
            AlreadyRegistered: asset_id is already registered
            UnsupportedPrecision: precision differs from REFERENCE_PRECISION
            InvalidRatio: ratio is zero
        """
        _require_int("ratio", ratio)
        if asset_id in self._assets:
            raise AlreadyRegistered(f"Asset {asset_id} already registered")
        if precision != REFERENCE_PRECISION:
            raise UnsupportedPrecision(
                f"Asset {asset_id} uses {precision} decimals; only "
                f"{REFERENCE_PRECISION} is supported"
            )
        if ratio == 0:
            raise InvalidRatio(f"Asset {asset_id} collaterability must be above 0")

        asset = CollateralAsset(
            asset_id=asset_id,
            ratio=ratio,
            retired=False,
            beneficiary=_resolve_beneficiary(beneficiary),
        )
        self._assets[asset_id] = asset
        logger.debug("Registered asset %s ratio=%d beneficiary=%s", asset_id, ratio, asset.beneficiary)
        return asset

    def set_ratio(self, asset_id: AssetId, new_ratio: int) -> Tuple[CollateralAsset, CollateralAsset]:
        """
        Replace an asset's ratio. A zero ratio retires the asset.

        The stored ratio is always the value given, so balances of an asset
        retired this way value at zero.

        Returns:
            (old_asset, new_asset)
        """
        _require_int("new_ratio", new_ratio)
        old = self._get(asset_id)
        new = replace(old, ratio=new_ratio, retired=old.retired or new_ratio == 0)
        self._assets[asset_id] = new
        return old, new

    def set_beneficiary(
        self,
        asset_id: AssetId,
        new_beneficiary: Optional[AccountId],
    ) -> Tuple[CollateralAsset, CollateralAsset]:
        """
        Redirect where an asset's collateral goes on liquidation.

        Raises:
            ProtectedAsset: asset must remain burned
            UnknownAsset: asset not registered

        Returns:
            (old_asset, new_asset)
        """
        if asset_id in self._protected:
            raise ProtectedAsset(f"Asset {asset_id} collateral must stay burned")
        old = self._get(asset_id)
        new = replace(old, beneficiary=_resolve_beneficiary(new_beneficiary))
        self._assets[asset_id] = new
        return old, new

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def ratio_of(self, asset_id: AssetId) -> int:
        """Collaterability ratio; zero for unknown assets."""
        asset = self._assets.get(asset_id)
        return asset.ratio if asset else 0

    def is_retired(self, asset_id: AssetId) -> bool:
        """Retirement flag; unknown assets count as retired."""
        asset = self._assets.get(asset_id)
        return asset.retired if asset else True

    def beneficiary_of(self, asset_id: AssetId) -> AccountId:
        """Liquidation destination; the burn sentinel for unknown assets."""
        asset = self._assets.get(asset_id)
        return asset.beneficiary if asset else BURN_ADDRESS

    def get(self, asset_id: AssetId) -> Optional[CollateralAsset]:
        return self._assets.get(asset_id)

    def is_registered(self, asset_id: AssetId) -> bool:
        return asset_id in self._assets

    def list_assets(self) -> List[AssetId]:
        """Registered asset ids, sorted for deterministic iteration."""
        return sorted(self._assets)

    def _get(self, asset_id: AssetId) -> CollateralAsset:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise UnknownAsset(f"Asset {asset_id} not added")
        return asset
