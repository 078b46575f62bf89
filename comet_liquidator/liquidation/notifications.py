"""
Apprise notification functions for the liquidation bot.
"""

import time

from apprise import Apprise

from .config_loader import BotConfig
from .logging_config import setup_logger
from .models import ExecutionRecord

logger = setup_logger()


def setup_apprise_notification_object(config: BotConfig) -> Apprise:
    """Set up the Apprise notification engine."""
    apprise = Apprise()
    apprise.add(config.NOTIFICATION_URL)
    return apprise


def _notify(body: str, title: str, config: BotConfig) -> bool:
    if not config.NOTIFICATION_URL:
        logger.debug("Notifications: NOTIFICATION_URL not set, skipping '%s'", title)
        return False

    apprise = setup_apprise_notification_object(config)
    return apprise.notify(body=body, title=title)


def post_liquidation_result_notification(record: ExecutionRecord, config: BotConfig) -> bool:
    """Post a notification about a confirmed liquidation."""
    message = (
        ":moneybag: *Liquidation Completed* :moneybag:\n\n"
        f"*Account*: `{record.account}`\n"
        f"• Estimated net profit (base units): `{record.net_profit}`\n"
        f"• Liquidation Transaction: <{config.EXPLORER_URL}/tx/{record.tx_hash}|View Transaction on Explorer>\n"
        f"Time of liquidation: {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(record.timestamp))}\n"
    )
    logger.info("Liquidation result notification:\n%s", message)
    return _notify(message, "Liquidation Completed", config)


def post_liquidation_failure_notification(record: ExecutionRecord, config: BotConfig) -> bool:
    """Post a notification about a liquidation attempt that did not confirm."""
    message = (
        ":warning: *Liquidation Not Confirmed* :warning:\n\n"
        f"*Account*: `{record.account}`\n"
        f"• Outcome: `{record.outcome.value}`\n"
        f"• Cause: `{record.cause}`\n"
    )
    if record.tx_hash:
        message += f"• Transaction: <{config.EXPLORER_URL}/tx/{record.tx_hash}|View Transaction on Explorer>\n"
    message += f"Time: {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(record.timestamp))}\n"
    logger.info("Liquidation failure notification:\n%s", message)
    return _notify(message, "Liquidation Not Confirmed", config)


def post_execution_record_notification(record: ExecutionRecord, config: BotConfig) -> bool:
    if record.succeeded:
        return post_liquidation_result_notification(record, config)
    return post_liquidation_failure_notification(record, config)


def post_error_notification(message: str, config: BotConfig) -> bool:
    """Post an error notification."""
    error_message = f":rotating_light: *Error Notification* :rotating_light:\n\n{message}\n\n"
    error_message += f"Time: {time.strftime('%Y-%m-%d %H:%M:%S')}\n"

    logger.info("Error notification:\n%s", error_message)
    return _notify(error_message, "Error Notification", config)
