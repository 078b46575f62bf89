"""
Profitability evaluation for a single watched account.
"""

from typing import List, Sequence

from .config_loader import BotConfig
from .exceptions import PermanentReadError
from .logging_config import setup_logger
from .models import CollateralAsset, CollateralPlanEntry, LiquidationCandidate
from .protocol_reader import ProtocolReader

logger = setup_logger()


def base_needed_for_reserve(reserve: int, quote: int, unit_of_base: int) -> int:
    """
    Base asset needed to buy a collateral reserve at the protocol's rate.

    Args:
        reserve: Collateral units held by the protocol.
        quote: Collateral units the protocol gives for `unit_of_base` base units.
        unit_of_base: Base amount the quote was requested for.

    Returns:
        reserve * unit_of_base / quote, truncated toward zero like the protocol does.
    """
    if quote <= 0:
        raise PermanentReadError(f"Non-positive collateral quote {quote}")
    if reserve < 0:
        raise PermanentReadError(f"Negative collateral reserve {reserve}")
    return reserve * unit_of_base // quote


class ProfitabilityEvaluator:
    """
    Decides whether liquidating an account now has a positive expected return.
    Performs no writes; safe to call concurrently for different accounts.
    """

    def __init__(
        self,
        reader: ProtocolReader,
        collateral_assets: Sequence[CollateralAsset],
        unit_of_base: int,
        gas_cost_estimate: int,
        min_profit: int = 0,
        swap_pool_fee: int = 3000,
    ):
        if not collateral_assets:
            raise ValueError("At least one collateral asset is required")
        self.reader = reader
        self.collateral_assets = list(collateral_assets)
        self.unit_of_base = int(unit_of_base)
        self.gas_cost_estimate = int(gas_cost_estimate)
        self.min_profit = int(min_profit)
        self.swap_pool_fee = int(swap_pool_fee)

    @classmethod
    def from_config(cls, reader: ProtocolReader, config: BotConfig) -> "ProfitabilityEvaluator":
        return cls(
            reader=reader,
            collateral_assets=config.COLLATERAL_ASSETS,
            unit_of_base=config.UNIT_OF_BASE,
            gas_cost_estimate=config.GAS_COST_ESTIMATE,
            min_profit=config.MIN_PROFIT,
            swap_pool_fee=config.SWAP_POOL_FEE,
        )

    def evaluate(self, account: str) -> LiquidationCandidate:
        """
        Evaluate one account against live state.

        Returns:
            A not-eligible candidate when the protocol says the account cannot be
            absorbed, otherwise a candidate whose `actionable` flag says whether
            the estimated net profit clears the minimum margin.

        Raises:
            TransientReadError, PermanentReadError from the underlying reads.
        """
        if not self.reader.is_eligible_for_liquidation(account):
            logger.debug("ProfitabilityEvaluator: %s is not liquidatable", account)
            return LiquidationCandidate.not_eligible(account)

        logger.info("ProfitabilityEvaluator: %s is liquidatable, pricing collateral", account)

        base_asset = self.reader.base_asset()
        plan = self._collateral_plan()
        total_base_needed = sum(entry.base_needed for entry in plan)

        if total_base_needed == 0:
            logger.info("ProfitabilityEvaluator: %s has no collateral reserves to buy", account)
            return LiquidationCandidate(
                account=account,
                is_eligible=True,
                actionable=False,
                collateral_plan=tuple(plan),
                base_asset=base_asset,
                swap_pool_fee=self.swap_pool_fee,
            )

        # Round trip through the first collateral asset approximates what the
        # absorbed collateral realizes on the open market.
        first_asset = self.collateral_assets[0].address
        estimated_collateral = self.reader.quote_external_swap(base_asset, first_asset, total_base_needed)
        estimated_back = self.reader.quote_external_swap(first_asset, base_asset, estimated_collateral)

        net_profit = estimated_back - (total_base_needed + self.gas_cost_estimate)
        # A negative margin never makes a loss actionable
        actionable = net_profit > 0 and net_profit > self.min_profit

        logger.info(
            "ProfitabilityEvaluator: %s baseNeeded=%s, estimatedCollateral=%s, estimatedBack=%s, gas=%s, "
            "netProfit=%s, minProfit=%s, actionable=%s",
            account, total_base_needed, estimated_collateral, estimated_back, self.gas_cost_estimate,
            net_profit, self.min_profit, actionable,
        )

        return LiquidationCandidate(
            account=account,
            is_eligible=True,
            actionable=actionable,
            collateral_plan=tuple(plan),
            base_asset=base_asset,
            estimated_cost_in=total_base_needed,
            estimated_proceeds_out=estimated_back,
            net_profit=net_profit,
            swap_pool_fee=self.swap_pool_fee,
        )

    def _collateral_plan(self) -> List[CollateralPlanEntry]:
        plan = []
        for asset in self.collateral_assets:
            reserve = self.reader.collateral_reserve(asset.address)
            quote = self.reader.quote_collateral_for_base(asset.address, self.unit_of_base)
            base_needed = base_needed_for_reserve(reserve, quote, self.unit_of_base)
            logger.debug(
                "ProfitabilityEvaluator: %s reserve=%s, quote=%s, baseNeeded=%s",
                asset.symbol, reserve, quote, base_needed,
            )
            plan.append(CollateralPlanEntry(asset=asset, reserve=reserve, base_needed=base_needed))
        return plan
