"""
Start point for running the liquidation bot
"""
import logging
import os
import sys
import threading

from dotenv import load_dotenv

load_dotenv()

from comet_liquidator import start_status_server
from comet_liquidator.liquidation.bot_manager import LiquidationBot
from comet_liquidator.liquidation.config_loader import load_config
from comet_liquidator.liquidation.connection_supervisor import EXIT_STARTUP_FAILURE
from comet_liquidator.liquidation.exceptions import LiquidationBotError
from comet_liquidator.liquidation.logging_config import (
    global_exception_handler,
    setup_logger,
    thread_exception_handler,
)

logger = setup_logger()


def main() -> int:
    sys.excepthook = global_exception_handler
    threading.excepthook = thread_exception_handler

    try:
        config = load_config()
        bot = LiquidationBot(config, notify=True, execute_liquidation=True)
    except (LiquidationBotError, OSError, ValueError) as ex:
        logger.critical("Startup failed: %s", ex, exc_info=True)
        return EXIT_STARTUP_FAILURE

    if config.HTTP_PORT:
        start_status_server(bot, config.HTTP_PORT)

    return bot.run()


if __name__ == "__main__":
    exit_code = main()
    logging.shutdown()
    # Worker threads may still be waiting on receipts; they are abandoned
    os._exit(exit_code)
