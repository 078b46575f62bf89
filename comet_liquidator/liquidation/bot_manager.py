import threading
from typing import List, Optional

from web3.contract import Contract

from .account_ledger import AccountLedger
from .account_monitor import AccountMonitor
from .config_loader import BotConfig
from .connection_supervisor import EXIT_OK, EXIT_STARTUP_FAILURE, ConnectionSupervisor
from .event_listener import CometEventListener
from .exceptions import LiquidationBotError, ReadError
from .execution import ExecutionEngine
from .logging_config import setup_logger
from .notifications import post_error_notification, post_execution_record_notification
from .profitability import ProfitabilityEvaluator
from .protocol_reader import ProtocolReader

logger = setup_logger()


class LiquidationBot:
    """Wires the ledger, evaluator, engine and trigger sources for one Comet market"""

    def __init__(
        self,
        config: BotConfig,
        notify: bool = True,
        execute_liquidation: bool = True,
        reader: Optional[ProtocolReader] = None,
        liquidator: Optional[Contract] = None,
    ):
        self.config = config
        self.notify = notify
        self.stop_event = threading.Event()

        self.ledger = AccountLedger()
        self.reader = reader or ProtocolReader(config)
        self.evaluator = ProfitabilityEvaluator.from_config(self.reader, config)
        self.engine = ExecutionEngine(
            config, self.ledger, self.evaluator, liquidator=liquidator, stop_event=self.stop_event
        )
        if notify:
            self.engine.add_record_listener(lambda record: post_execution_record_notification(record, config))

        self.supervisor = ConnectionSupervisor(config.w3, self.stop_event, config.HEALTH_CHECK_INTERVAL)
        self.monitor = AccountMonitor(
            self.ledger,
            self.evaluator,
            self.engine,
            self.stop_event,
            sweep_interval=config.SWEEP_INTERVAL,
            max_workers=config.MAX_WORKERS,
            execute_liquidation=execute_liquidation,
            supervisor=self.supervisor,
        )
        self.listener = CometEventListener(
            self.reader,
            self.ledger,
            self.monitor,
            self.supervisor,
            self.stop_event,
            config.WATCHED_EVENTS,
            scan_interval=config.SCAN_INTERVAL,
            bootstrap_blocks=config.BOOTSTRAP_BLOCKS,
            batch_size=config.BATCH_SIZE,
            batch_interval=config.BATCH_INTERVAL,
        )
        self.threads: List[threading.Thread] = []

    def check_startup(self) -> None:
        """Fail fast when the market cannot be read at all."""
        try:
            base_asset = self.reader.base_asset()
        except ReadError as ex:
            raise LiquidationBotError(f"Cannot read Comet market at {self.config.COMET_ADDRESS}: {ex}") from ex
        logger.info(
            "LiquidationBot: Comet %s, base token %s, liquidator %s, %s collateral assets",
            self.config.COMET_ADDRESS, base_asset, self.config.LIQUIDATOR_CONTRACT, len(self.config.COLLATERAL_ASSETS),
        )

    def start(self) -> None:
        """Start the supervisor, dispatcher, listener and sweep threads"""
        self.check_startup()

        self._start_thread(self.supervisor.watch, "supervisor")
        self._start_thread(self.listener.dispatch_events, "dispatcher")

        self.listener.batch_account_logs_on_startup()

        self._start_thread(self.listener.start_event_monitoring, "listener")
        self._start_thread(self.monitor.periodic_sweep, "sweeper")
        logger.info("LiquidationBot: Started, listening for Comet events")

    def _start_thread(self, target, name: str) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self.threads.append(thread)

    def run(self) -> int:
        """
        Run until a connection failure or an interrupt.

        Returns:
            int: Process exit code for the external supervisor.
        """
        try:
            self.start()
        except LiquidationBotError as ex:
            logger.critical("LiquidationBot: Startup failed: %s", ex)
            self.stop()
            return EXIT_STARTUP_FAILURE

        try:
            self.stop_event.wait()
        except KeyboardInterrupt:
            logger.info("LiquidationBot: Interrupted, shutting down")
            self.stop()
            return EXIT_OK

        self.stop()
        if self.supervisor.failed:
            logger.critical("LiquidationBot: Exiting after %s", self.supervisor.failure)
            if self.notify:
                try:
                    post_error_notification(f"Liquidation bot exiting: {self.supervisor.failure}", self.config)
                except Exception as ex:
                    logger.error("LiquidationBot: Failed to post exit notification: %s", ex, exc_info=True)
        return self.supervisor.exit_code

    def stop(self) -> None:
        """Stop all trigger sources; in-flight attempts are abandoned"""
        self.monitor.stop()
        in_flight = self.engine.in_flight()
        if in_flight:
            logger.warning("LiquidationBot: Abandoning in-flight attempts for %s", ", ".join(in_flight))
