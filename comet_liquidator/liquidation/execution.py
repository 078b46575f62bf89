"""
Submission, confirmation and bookkeeping of liquidation transactions.
"""

import collections
import threading
from decimal import Decimal
from typing import Callable, Deque, List, Optional, Set

from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError, TimeExhausted

from .account_ledger import AccountLedger
from .config_loader import BotConfig
from .contracts import create_contract_instance
from .exceptions import ReadError, RevertedExecution, SubmissionFailure
from .logging_config import setup_logger
from .models import ExecutionAttempt, ExecutionOutcome, ExecutionRecord, LiquidationCandidate
from .profitability import ProfitabilityEvaluator

logger = setup_logger()

RecordListener = Callable[[ExecutionRecord], None]


class ExecutionEngine:
    """
    Submits absorbAndArbitrage for actionable candidates.

    At most one attempt per account is in flight at any time; a second request
    for the same account is dropped rather than queued. Attempts are never
    retried here: the next event or sweep re-evaluates the account.
    """

    def __init__(
        self,
        config: BotConfig,
        ledger: AccountLedger,
        evaluator: ProfitabilityEvaluator,
        liquidator: Optional[Contract] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.config = config
        self.w3 = config.w3
        self.ledger = ledger
        self.evaluator = evaluator
        self.liquidator = liquidator or create_contract_instance(
            config.LIQUIDATOR_CONTRACT, "LIQUIDATOR_ABI_PATH", config
        )
        self.stop_event = stop_event or threading.Event()

        self.gas_safety_multiplier = Decimal(str(config.GAS_SAFETY_MULTIPLIER))
        self.gas_price_multiplier = Decimal(str(config.GAS_PRICE_MULTIPLIER))
        self.confirmation_timeout = float(config.CONFIRMATION_TIMEOUT)
        self.confirmation_poll_latency = float(config.CONFIRMATION_POLL_LATENCY)

        self._in_flight: Set[str] = set()
        self._in_flight_lock = threading.Lock()
        # Serializes nonce selection and broadcast for the single execution account
        self._submission_lock = threading.Lock()

        self.records: Deque[ExecutionRecord] = collections.deque(maxlen=int(config.RECORD_HISTORY_SIZE))
        self._record_listeners: List[RecordListener] = []

    def add_record_listener(self, listener: RecordListener) -> None:
        self._record_listeners.append(listener)

    def is_in_flight(self, account: str) -> bool:
        account = AccountLedger.normalize(account)
        with self._in_flight_lock:
            return account in self._in_flight

    def in_flight(self) -> List[str]:
        with self._in_flight_lock:
            return sorted(self._in_flight)

    def execute(self, candidate: LiquidationCandidate) -> Optional[ExecutionAttempt]:
        """
        Run one liquidation attempt to a terminal outcome.

        Returns:
            The finished attempt, or None when nothing was attempted because the
            candidate is not actionable, the account already has an attempt in
            flight, or the bot is shutting down.
        """
        if not candidate.actionable:
            logger.info("ExecutionEngine: %s is not actionable, not submitting", candidate.account)
            return None

        if self.stop_event.is_set():
            logger.info("ExecutionEngine: Shutting down, not executing %s", candidate.account)
            return None

        account = AccountLedger.normalize(candidate.account)
        if not self._claim(account):
            logger.info("ExecutionEngine: %s already has an attempt in flight, dropping trigger", account)
            return None

        attempt = ExecutionAttempt(candidate=candidate)
        try:
            self._run_attempt(attempt)
        except (SubmissionFailure, RevertedExecution, ReadError, TimeExhausted) as ex:
            self._fail(attempt, ex)
        except Exception as ex:
            logger.error("ExecutionEngine: Unexpected error executing %s: %s", account, ex, exc_info=True)
            self._fail(attempt, ex)
        finally:
            self._release(account)

        return attempt

    def _claim(self, account: str) -> bool:
        with self._in_flight_lock:
            if account in self._in_flight:
                return False
            self._in_flight.add(account)
            return True

    def _release(self, account: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(account)

    def _run_attempt(self, attempt: ExecutionAttempt) -> None:
        account = attempt.account
        call = self._build_call(attempt.candidate)

        estimated_gas = self._estimate_gas(call, account)
        attempt.gas_budget = int(Decimal(estimated_gas) * self.gas_safety_multiplier)
        logger.info(
            "ExecutionEngine: %s gas estimate=%s, budget=%s (x%s)",
            account, estimated_gas, attempt.gas_budget, self.gas_safety_multiplier,
        )

        # Prices may have moved while gas was estimated
        fresh = self.evaluator.evaluate(account)
        if not fresh.actionable:
            raise SubmissionFailure(
                f"{account} no longer profitable at submission (eligible={fresh.is_eligible}, "
                f"netProfit={fresh.net_profit})"
            )
        attempt.candidate = fresh

        if self.stop_event.is_set():
            raise SubmissionFailure("shutdown requested before submission")

        attempt.tx_hash = self._submit(call, attempt.gas_budget)
        attempt.outcome = ExecutionOutcome.SUBMITTED
        logger.info("ExecutionEngine: Submitted liquidation of %s in tx %s", account, attempt.tx_hash)

        receipt = self.w3.eth.wait_for_transaction_receipt(
            attempt.tx_hash, timeout=self.confirmation_timeout, poll_latency=self.confirmation_poll_latency
        )

        if receipt["status"] != 1:
            raise RevertedExecution(f"tx {attempt.tx_hash} reverted in block {receipt.get('blockNumber')}")

        attempt.outcome = ExecutionOutcome.CONFIRMED
        self.ledger.remove(account)
        logger.info(
            "ExecutionEngine: Liquidated %s in tx %s (gasUsed=%s)", account, attempt.tx_hash, receipt.get("gasUsed")
        )
        self._emit(attempt)

    def _build_call(self, candidate: LiquidationCandidate):
        return self.liquidator.functions.absorbAndArbitrage(
            self.config.COMET_ADDRESS,
            [candidate.account],
            list(candidate.assets),
            list(candidate.pool_configs),
            list(candidate.max_amounts_to_purchase),
            candidate.base_asset,
            candidate.swap_pool_fee,
            int(self.config.MIN_ONCHAIN_PROFIT),
        )

    def _estimate_gas(self, call, account: str) -> int:
        try:
            return int(call.estimate_gas({"from": self.config.LIQUIDATOR_EOA}))
        except ContractLogicError as ex:
            raise SubmissionFailure(f"gas estimation reverted for {account}: {ex}") from ex
        except Exception as ex:
            raise SubmissionFailure(f"gas estimation failed for {account}: {ex}") from ex

    def _suggested_gas_price(self) -> int:
        return int(Decimal(self.w3.eth.gas_price) * self.gas_price_multiplier)

    def _submit(self, call, gas_budget: int) -> str:
        with self._submission_lock:
            try:
                tx = call.build_transaction({
                    "from": self.config.LIQUIDATOR_EOA,
                    "nonce": self.w3.eth.get_transaction_count(self.config.LIQUIDATOR_EOA, "pending"),
                    "gas": gas_budget,
                    "gasPrice": self._suggested_gas_price(),
                })
                signed_tx = self.w3.eth.account.sign_transaction(tx, self.config.LIQUIDATOR_PRIVATE_KEY)
                tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            except Exception as ex:
                raise SubmissionFailure(f"transaction rejected: {ex}") from ex
        return Web3.to_hex(tx_hash)

    def _fail(self, attempt: ExecutionAttempt, error: Exception) -> None:
        attempt.error = error
        if isinstance(error, RevertedExecution):
            attempt.outcome = ExecutionOutcome.REVERTED
            logger.warning(
                "ExecutionEngine: Liquidation of %s reverted, likely absorbed by someone else first: %s",
                attempt.account, error,
            )
        else:
            attempt.outcome = ExecutionOutcome.FAILED
            if isinstance(error, TimeExhausted):
                logger.error(
                    "ExecutionEngine: No receipt for %s tx %s after %ss, releasing account",
                    attempt.account, attempt.tx_hash, self.confirmation_timeout,
                )
            else:
                logger.error("ExecutionEngine: Liquidation of %s failed: %s", attempt.account, error)
        self._emit(attempt)

    def _emit(self, attempt: ExecutionAttempt) -> None:
        record = ExecutionRecord(
            account=attempt.account,
            outcome=attempt.outcome,
            tx_hash=attempt.tx_hash,
            net_profit=attempt.candidate.net_profit,
            cause=str(attempt.error) if attempt.error else None,
        )
        self.records.append(record)

        for listener in self._record_listeners:
            try:
                listener(record)
            except Exception as ex:
                logger.error("ExecutionEngine: Record listener failed for %s: %s", record.account, ex, exc_info=True)
