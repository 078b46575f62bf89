"""
Config Loader module - environment variables on top of config.yaml defaults
"""

import os
from typing import Any, Callable, Dict, List, Optional

import yaml
from web3 import HTTPProvider, LegacyWebSocketProvider, Web3

from .exceptions import ConfigError
from .models import ZERO_ADDRESS, ZERO_BYTES32, CollateralAsset, PoolConfig

PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
CONFIG_PATH = os.path.join(PACKAGE_DIR, "config.yaml")


class Web3Singleton:
    """
    Singleton class to manage w3 object creation per RPC URL
    """

    _instances = {}

    @staticmethod
    def get_instance(rpc_url: str, timeout: float = 5):
        """
        Set up a Web3 instance for the RPC URL.
        Maintains separate instances per unique RPC URL.
        """

        if rpc_url not in Web3Singleton._instances:
            if rpc_url.startswith(("ws://", "wss://")):
                provider = LegacyWebSocketProvider(rpc_url, websocket_timeout=timeout)
            else:
                provider = HTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
            Web3Singleton._instances[rpc_url] = Web3(provider)

        return Web3Singleton._instances[rpc_url]


def setup_w3(rpc_url: str, timeout: float = 5) -> Web3:
    """
    Get the Web3 instance from the singleton class

    Args:
        rpc_url (str): HTTP(S) or WS(S) endpoint
        timeout (float): Per-request timeout in seconds

    Returns:
        Web3: Web3 instance.
    """
    return Web3Singleton.get_instance(rpc_url, timeout)


def _split_csv(raw: str) -> List[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


class BotConfig:
    """
    Config object to access config variables
    """

    required_env_vars = [
        "RPC_URL",
        "LIQUIDATOR_EOA",
        "LIQUIDATOR_PRIVATE_KEY",
        "LIQUIDATOR_CONTRACT",
        "COMET_ADDRESS",
        "UNISWAP_QUOTER",
        # "NOTIFICATION_URL",  # Optional
    ]

    # Values that may be overridden from the environment, with their types
    env_overrides: Dict[str, Callable[[str], Any]] = {
        "SWEEP_INTERVAL": float,
        "SCAN_INTERVAL": float,
        "READ_TIMEOUT": float,
        "CONFIRMATION_TIMEOUT": float,
        "GAS_SAFETY_MULTIPLIER": float,
        "GAS_COST_ESTIMATE": int,
        "MIN_PROFIT": int,
        "BOOTSTRAP_BLOCKS": int,
        "MAX_WORKERS": int,
        "HTTP_PORT": int,
    }

    def __init__(self, global_config: Dict[str, Any]):
        self._global = dict(global_config)

        # validate env
        self.validate()
        self._apply_env_overrides()

        self.RPC_URL = os.environ["RPC_URL"]
        self.LIQUIDATOR_EOA = Web3.to_checksum_address(os.environ["LIQUIDATOR_EOA"])
        self.LIQUIDATOR_PRIVATE_KEY = os.environ["LIQUIDATOR_PRIVATE_KEY"]
        self.LIQUIDATOR_CONTRACT = Web3.to_checksum_address(os.environ["LIQUIDATOR_CONTRACT"])
        self.COMET_ADDRESS = Web3.to_checksum_address(os.environ["COMET_ADDRESS"])
        self.UNISWAP_QUOTER = Web3.to_checksum_address(os.environ["UNISWAP_QUOTER"])
        self.NOTIFICATION_URL = os.environ.get("NOTIFICATION_URL", "")

        if self.GAS_SAFETY_MULTIPLIER < 1:
            raise ConfigError(f"GAS_SAFETY_MULTIPLIER must be at least 1, got {self.GAS_SAFETY_MULTIPLIER}")
        if self.SWEEP_INTERVAL <= 0:
            raise ConfigError(f"SWEEP_INTERVAL must be positive, got {self.SWEEP_INTERVAL}")
        if self.MIN_PROFIT < 0:
            raise ConfigError(f"MIN_PROFIT must not be negative, got {self.MIN_PROFIT}")

        self.COLLATERAL_ASSETS = self._load_collateral_assets(os.environ.get("COLLATERAL_ASSETS", ""))
        self.WATCHED_EVENTS = list(self._global.get("WATCHED_EVENTS", []))

        self.w3 = setup_w3(self.RPC_URL, self.READ_TIMEOUT)

    def __getattr__(self, name: str) -> Any:
        """Look up config values in the global config."""
        if name.startswith("_"):
            raise AttributeError(name)
        if name in self._global:
            return self._global[name]
        raise AttributeError(f"Config has no attribute '{name}'")

    def validate(self) -> None:
        """
        Validates that all required environment variables are set.
        Raises an error if any are missing.
        """
        missing_keys = [key for key in self.required_env_vars if not os.getenv(key)]
        if missing_keys:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing_keys)}")

    def abi_path(self, key: str) -> str:
        """Resolve an ABI path from config.yaml relative to the package directory."""
        path = self._global[key]
        if os.path.isabs(path):
            return path
        return os.path.join(PACKAGE_DIR, path)

    def _apply_env_overrides(self) -> None:
        for key, cast in self.env_overrides.items():
            raw = os.environ.get(key)
            if raw is None or raw == "":
                continue
            try:
                self._global[key] = cast(raw)
            except ValueError as exc:
                raise ConfigError(f"Invalid value for {key}: {raw!r}") from exc

    def _load_collateral_assets(self, allowlist_raw: str) -> List[CollateralAsset]:
        assets = []
        for entry in self._global.get("COLLATERAL_ASSETS", []):
            balancer_pool_id = entry.get("balancer_pool_id")
            pool_config = PoolConfig(
                exchange=int(entry.get("exchange", 0)),
                uniswap_pool_fee=int(entry.get("uniswap_pool_fee", 3000)),
                swap_via_weth=bool(entry.get("swap_via_weth", False)),
                balancer_pool_id=bytes.fromhex(balancer_pool_id.replace("0x", "")) if balancer_pool_id else ZERO_BYTES32,
                curve_pool=Web3.to_checksum_address(entry.get("curve_pool", ZERO_ADDRESS)),
            )
            assets.append(
                CollateralAsset(
                    symbol=entry["symbol"],
                    address=Web3.to_checksum_address(entry["address"]),
                    max_to_purchase=int(entry["max_to_purchase"]),
                    pool_config=pool_config,
                )
            )

        allowlist = [item.lower() for item in _split_csv(allowlist_raw)]
        if allowlist:
            known = {asset.symbol.lower() for asset in assets} | {asset.address.lower() for asset in assets}
            unknown = [item for item in allowlist if item not in known]
            if unknown:
                raise ConfigError(f"Unknown collateral assets in COLLATERAL_ASSETS: {', '.join(unknown)}")
            assets = [
                asset for asset in assets
                if asset.symbol.lower() in allowlist or asset.address.lower() in allowlist
            ]

        if not assets:
            raise ConfigError("No collateral assets configured")
        return assets


def load_config(config_path: Optional[str] = None) -> BotConfig:
    config_path = config_path or CONFIG_PATH

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found at {config_path}") from exc
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file: {e}") from e

    if not config or "global" not in config:
        raise ConfigError(f"No global section found in {config_path}")

    return BotConfig(global_config=config["global"])
