"""
Contract instance creation utilities.
"""

import json

from web3.contract import Contract

from .config_loader import BotConfig


def create_contract_instance(address: str, abi_key: str, config: BotConfig) -> Contract:
    """
    Create and return a Web3 contract instance.

    Args:
        address: The address of the contract.
        abi_key: config.yaml key holding the path to the ABI JSON file.
        config: Bot configuration containing the Web3 instance.

    Returns:
        Web3 contract instance.
    """
    with open(config.abi_path(abi_key), "r", encoding="utf-8") as file:
        interface = json.load(file)
    abi = interface["abi"]

    return config.w3.eth.contract(address=address, abi=abi)
