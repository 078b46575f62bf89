"""
Evaluation pipeline and periodic sweep over the watched accounts.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Set

from .account_ledger import AccountLedger
from .connection_supervisor import ConnectionSupervisor
from .exceptions import PermanentReadError, TransientReadError
from .execution import ExecutionEngine
from .logging_config import setup_logger
from .profitability import ProfitabilityEvaluator

logger = setup_logger()


class AccountMonitor:
    """
    Feeds watched accounts through evaluation and execution.

    Both trigger sources (the event dispatcher and the sweep) call
    submit_evaluation. Evaluations run on a bounded thread pool; an account
    with a pending evaluation or an in-flight execution is not submitted twice.
    Errors for one account never leave that account's task.
    """

    def __init__(
        self,
        ledger: AccountLedger,
        evaluator: ProfitabilityEvaluator,
        engine: ExecutionEngine,
        stop_event: threading.Event,
        sweep_interval: float = 60,
        max_workers: int = 8,
        execute_liquidation: bool = True,
        supervisor: Optional[ConnectionSupervisor] = None,
    ):
        self.ledger = ledger
        self.evaluator = evaluator
        self.engine = engine
        self.stop_event = stop_event
        self.sweep_interval = sweep_interval
        self.execute_liquidation = execute_liquidation
        self.supervisor = supervisor
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="evaluator")

        self._pending: Set[str] = set()
        self._pending_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return not self.stop_event.is_set()

    def submit_evaluation(self, address: str) -> Optional[Future]:
        """
        Schedule one account for evaluation.

        Returns:
            The future of the scheduled evaluation, or None if it was skipped.
        """
        if not self.running:
            logger.debug("AccountMonitor: Stopped, not evaluating %s", address)
            return None

        address = AccountLedger.normalize(address)

        if self.engine.is_in_flight(address):
            logger.info("AccountMonitor: %s has a liquidation in flight, skipping", address)
            return None

        with self._pending_lock:
            if address in self._pending:
                logger.debug("AccountMonitor: %s already pending evaluation", address)
                return None
            self._pending.add(address)

        try:
            return self.executor.submit(self._process_account, address)
        except RuntimeError:
            # Executor shut down between the running check and submit
            with self._pending_lock:
                self._pending.discard(address)
            return None

    def _process_account(self, address: str) -> None:
        try:
            self.evaluate_account(address)
        finally:
            with self._pending_lock:
                self._pending.discard(address)

    def evaluate_account(self, address: str) -> None:
        if not self.running:
            return

        try:
            candidate = self.evaluator.evaluate(address)

            if not candidate.is_eligible:
                return

            if not candidate.actionable:
                logger.info(
                    "AccountMonitor: %s is liquidatable but not profitable (netProfit=%s), skipping",
                    address, candidate.net_profit,
                )
                return

            logger.info("LIQUIDATION FOUND: %s (netProfit=%s)", address, candidate.net_profit)

            if not self.execute_liquidation:
                logger.info("AccountMonitor: Execution disabled, not liquidating %s", address)
                return

            attempt = self.engine.execute(candidate)
            if attempt is not None and isinstance(attempt.error, TransientReadError):
                self._report_lost_connection(attempt.error)

        except TransientReadError as ex:
            if not self._report_lost_connection(ex):
                logger.warning("AccountMonitor: Transient read error for %s, will retry on next trigger: %s", address, ex)
        except PermanentReadError as ex:
            logger.error("AccountMonitor: Permanent read error for %s, skipping this cycle: %s", address, ex)
        except Exception as ex:
            logger.error("AccountMonitor: Exception evaluating account %s: %s", address, ex, exc_info=True)

    def _report_lost_connection(self, error: TransientReadError) -> bool:
        """Hand a lost transport to the supervisor. Returns True if it was reported."""
        if not error.connection_lost or self.supervisor is None:
            return False
        self.supervisor.report_error(error)
        return True

    def sweep(self) -> int:
        """
        Submit every watched account for evaluation.

        Returns:
            int: Number of accounts submitted.
        """
        accounts = self.ledger.snapshot()
        logger.info("AccountMonitor: Scanning %s accounts for liquidation", len(accounts))

        submitted = 0
        for address in accounts:
            if not self.running:
                break
            if self.submit_evaluation(address) is not None:
                submitted += 1
        return submitted

    def periodic_sweep(self) -> None:
        """
        Sweep immediately, then every sweep_interval seconds until stopped.
        Should be run in a standalone thread.
        """
        logger.info("AccountMonitor: Sweep thread started (runs every %s seconds).", self.sweep_interval)
        while self.running:
            try:
                self.sweep()
            except Exception as ex:
                logger.error("AccountMonitor: Error during sweep: %s", ex, exc_info=True)
            if self.stop_event.wait(self.sweep_interval):
                break
        logger.info("AccountMonitor: Sweep thread stopped.")

    def stop(self) -> None:
        """Stop accepting work and drop queued evaluations; running ones finish on their own."""
        self.stop_event.set()
        self.executor.shutdown(wait=False, cancel_futures=True)
