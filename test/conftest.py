import os
import threading
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from comet_liquidator.liquidation.account_ledger import AccountLedger
from comet_liquidator.liquidation.config_loader import BotConfig, load_config
from comet_liquidator.liquidation.models import CollateralAsset, CollateralPlanEntry, LiquidationCandidate

ENV_EXAMPLE_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env.example")

TEST_ACCOUNT = "0x1111111111111111111111111111111111111111"
OTHER_ACCOUNT = "0x2222222222222222222222222222222222222222"
BASE_ASSET = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
WBTC = "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599"
TX_HASH_BYTES = bytes.fromhex("ab" * 32)
TX_HASH = "0x" + "ab" * 32


@pytest.fixture()
def config() -> BotConfig:
    load_dotenv(dotenv_path=ENV_EXAMPLE_PATH, override=True)
    return load_config()


@pytest.fixture()
def offline_config(config) -> BotConfig:
    """Config whose web3 instance is a MagicMock."""
    config.w3 = MagicMock()
    config.w3.eth.gas_price = 10
    config.w3.eth.get_transaction_count.return_value = 7
    config.w3.eth.send_raw_transaction.return_value = TX_HASH_BYTES
    config.w3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 100, "gasUsed": 90000}
    return config


@pytest.fixture()
def ledger() -> AccountLedger:
    return AccountLedger()


@pytest.fixture()
def stop_event() -> threading.Event:
    return threading.Event()


@pytest.fixture()
def collateral_assets():
    return [
        CollateralAsset(symbol="WETH", address=WETH, max_to_purchase=10**21),
        CollateralAsset(symbol="WBTC", address=WBTC, max_to_purchase=10**21),
    ]


def make_candidate(account=TEST_ACCOUNT, assets=None, net_profit=80, actionable=True) -> LiquidationCandidate:
    assets = assets or [CollateralAsset(symbol="WETH", address=WETH, max_to_purchase=10**21)]
    plan = tuple(CollateralPlanEntry(asset=asset, reserve=1000, base_needed=2000) for asset in assets)
    return LiquidationCandidate(
        account=account,
        is_eligible=True,
        actionable=actionable,
        collateral_plan=plan,
        base_asset=BASE_ASSET,
        estimated_cost_in=5000,
        estimated_proceeds_out=5000 + 20 + net_profit,
        net_profit=net_profit,
    )


def make_reader(eligible=True, reserves=None, quotes=None, swap_quotes=(2550, 5100)):
    """
    MagicMock ProtocolReader.

    Args:
        eligible: Result of is_eligible_for_liquidation.
        reserves: Mapping asset -> collateral reserve.
        quotes: Mapping asset -> protocol quote for unit_of_base.
        swap_quotes: Results of the two external swap quotes, in call order.
    """
    reserves = reserves or {WETH: 1000, WBTC: 3000}
    quotes = quotes or {WETH: 500, WBTC: 1000}

    reader = MagicMock()
    reader.is_eligible_for_liquidation.return_value = eligible
    reader.base_asset.return_value = BASE_ASSET
    reader.collateral_reserve.side_effect = lambda asset: reserves[asset]
    reader.quote_collateral_for_base.side_effect = lambda asset, amount: quotes[asset]
    reader.quote_external_swap.side_effect = list(swap_quotes)
    return reader
