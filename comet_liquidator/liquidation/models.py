"""
Data classes for structured returns in the liquidation bot.
"""

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = b"\x00" * 32


@dataclass(frozen=True)
class PoolConfig:
    """Swap routing used by the liquidator contract to sell one collateral asset."""

    exchange: int = 0
    uniswap_pool_fee: int = 3000
    swap_via_weth: bool = False
    balancer_pool_id: bytes = ZERO_BYTES32
    curve_pool: str = ZERO_ADDRESS

    def as_tuple(self) -> Tuple[int, int, bool, bytes, str]:
        return (self.exchange, self.uniswap_pool_fee, self.swap_via_weth, self.balancer_pool_id, self.curve_pool)


@dataclass(frozen=True)
class CollateralAsset:
    """A collateral asset from the configured allowlist."""

    symbol: str
    address: str
    max_to_purchase: int
    pool_config: PoolConfig = field(default_factory=PoolConfig)


@dataclass(frozen=True)
class CollateralPlanEntry:
    """Per-asset slice of a liquidation plan."""

    asset: CollateralAsset
    reserve: int
    base_needed: int

    @property
    def quantity(self) -> int:
        return self.reserve


@dataclass(frozen=True)
class LiquidationCandidate:
    """Result of evaluating one account. Recomputed on every trigger."""

    account: str
    is_eligible: bool
    actionable: bool = False
    collateral_plan: Tuple[CollateralPlanEntry, ...] = ()
    base_asset: Optional[str] = None
    estimated_cost_in: int = 0
    estimated_proceeds_out: int = 0
    net_profit: int = 0
    swap_pool_fee: int = 3000
    evaluated_at: float = field(default_factory=time.time)

    @classmethod
    def not_eligible(cls, account: str) -> "LiquidationCandidate":
        return cls(account=account, is_eligible=False)

    @property
    def assets(self) -> Tuple[str, ...]:
        return tuple(entry.asset.address for entry in self.collateral_plan)

    @property
    def pool_configs(self) -> Tuple[Tuple[Any, ...], ...]:
        return tuple(entry.asset.pool_config.as_tuple() for entry in self.collateral_plan)

    @property
    def max_amounts_to_purchase(self) -> Tuple[int, ...]:
        return tuple(entry.asset.max_to_purchase for entry in self.collateral_plan)


class ExecutionOutcome(enum.Enum):
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    FAILED = "failed"


@dataclass
class ExecutionAttempt:
    """One submission for one account, owned by the execution engine."""

    candidate: LiquidationCandidate
    gas_budget: int = 0
    outcome: Optional[ExecutionOutcome] = None
    tx_hash: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def account(self) -> str:
        return self.candidate.account


@dataclass(frozen=True)
class ExecutionRecord:
    """Success or failure record emitted when an attempt reaches a terminal outcome."""

    account: str
    outcome: ExecutionOutcome
    tx_hash: Optional[str]
    net_profit: int
    cause: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def succeeded(self) -> bool:
        return self.outcome is ExecutionOutcome.CONFIRMED

    def to_dict(self) -> dict:
        return {
            "account": self.account,
            "outcome": self.outcome.value,
            "tx_hash": self.tx_hash,
            "net_profit": self.net_profit,
            "cause": self.cause,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class AccountEvent:
    """Protocol event naming an account, as placed on the dispatcher queue."""

    event_name: str
    account: str
    immediate: bool
    block_number: int = 0
    tx_hash: Optional[str] = None
