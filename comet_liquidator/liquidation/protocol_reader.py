"""
Read-only queries against the Comet market and the external swap quoter.
"""

import threading
from typing import Any, List, Optional

from web3 import Web3
from web3.contract import Contract

from .config_loader import BotConfig
from .contracts import create_contract_instance
from .decorators import classify_read_errors
from .logging_config import setup_logger

logger = setup_logger()


class ProtocolReader:
    """
    Wraps every remote read the evaluator and the trigger sources need.

    Each public method raises TransientReadError or PermanentReadError on failure.
    Timeouts are enforced by the provider (READ_TIMEOUT).
    """

    def __init__(self, config: BotConfig, comet: Optional[Contract] = None, quoter: Optional[Contract] = None):
        self.config = config
        self.w3 = config.w3
        self.comet = comet or create_contract_instance(config.COMET_ADDRESS, "COMET_ABI_PATH", config)
        self.quoter = quoter or create_contract_instance(config.UNISWAP_QUOTER, "QUOTER_ABI_PATH", config)
        self.swap_pool_fee = int(config.SWAP_POOL_FEE)

        self._base_asset: Optional[str] = None
        self._base_asset_lock = threading.Lock()

    @classify_read_errors
    def is_eligible_for_liquidation(self, account: str) -> bool:
        return bool(self.comet.functions.isLiquidatable(account).call())

    @classify_read_errors
    def base_asset(self) -> str:
        """Base token of the market. Immutable, so read once and cached."""
        with self._base_asset_lock:
            if self._base_asset is None:
                self._base_asset = Web3.to_checksum_address(self.comet.functions.baseToken().call())
                logger.info("ProtocolReader: Comet base token is %s", self._base_asset)
            return self._base_asset

    @classify_read_errors
    def collateral_reserve(self, asset: str) -> int:
        return int(self.comet.functions.getCollateralReserves(asset).call())

    @classify_read_errors
    def quote_collateral_for_base(self, asset: str, base_amount: int) -> int:
        """Protocol's internal rate: collateral units received for base_amount of base."""
        return int(self.comet.functions.quoteCollateral(asset, base_amount).call())

    @classify_read_errors
    def quote_external_swap(self, asset_in: str, asset_out: str, amount_out: int) -> int:
        """Amount of asset_in an external pool needs to return exactly amount_out of asset_out."""
        return int(
            self.quoter.functions.quoteExactOutputSingle(asset_in, asset_out, self.swap_pool_fee, amount_out, 0).call()
        )

    @classify_read_errors
    def latest_block(self) -> int:
        return int(self.w3.eth.block_number)

    @classify_read_errors
    def get_account_events(self, event_name: str, from_block: int, to_block: int) -> List[Any]:
        event = getattr(self.comet.events, event_name)
        return list(event().get_logs(from_block=from_block, to_block=to_block))
