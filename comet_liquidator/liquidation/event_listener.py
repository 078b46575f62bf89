"""
Comet event listener.
Polls account-bearing events (Borrow, Supply, Withdraw) and hands them to a
single dispatcher thread through a queue. Every event adds the account to the
ledger; borrow-type events also trigger an immediate evaluation.
"""

import queue
import threading
from typing import Any, Dict, Iterable, Optional

from web3 import Web3

from .account_ledger import AccountLedger
from .account_monitor import AccountMonitor
from .connection_supervisor import ConnectionSupervisor
from .exceptions import PermanentReadError, TransientReadError
from .logging_config import setup_logger
from .models import AccountEvent
from .protocol_reader import ProtocolReader

logger = setup_logger()


class CometEventListener:
    """
    Listener for account-bearing Comet events.
    """

    def __init__(
        self,
        reader: ProtocolReader,
        ledger: AccountLedger,
        monitor: AccountMonitor,
        supervisor: ConnectionSupervisor,
        stop_event: threading.Event,
        watched_events: Iterable[Dict[str, Any]],
        scan_interval: float = 12,
        bootstrap_blocks: int = 0,
        batch_size: int = 5000,
        batch_interval: float = 0,
    ):
        self.reader = reader
        self.ledger = ledger
        self.monitor = monitor
        self.supervisor = supervisor
        self.stop_event = stop_event
        self.watched_events = [dict(event) for event in watched_events]
        self.scan_interval = scan_interval
        self.bootstrap_blocks = int(bootstrap_blocks)
        self.batch_size = int(batch_size)
        self.batch_interval = batch_interval

        self.events: "queue.Queue[AccountEvent]" = queue.Queue()
        self.last_scanned_block: Optional[int] = None

    def start_event_monitoring(self) -> None:
        """
        Poll for new events until stopped.
        Should be run in a standalone thread.
        """
        logger.info(
            "CometEventListener: Listening for %s events",
            ", ".join(event["name"] for event in self.watched_events),
        )
        while not self.stop_event.is_set():
            self._guarded(self.poll_once, "polling events")
            if self.stop_event.wait(self.scan_interval):
                break
        logger.info("CometEventListener: Event monitoring stopped.")

    def poll_once(self) -> int:
        """
        Scan blocks produced since the last poll.

        Returns:
            int: Number of events enqueued.
        """
        current_block = self.reader.latest_block()
        if self.last_scanned_block is None:
            # Nothing scanned yet: start from the head
            self.last_scanned_block = current_block - 1

        if current_block <= self.last_scanned_block:
            return 0
        return self.scan_block_range(self.last_scanned_block + 1, current_block)

    def scan_block_range(self, start_block: int, end_block: int, live: bool = True) -> int:
        """
        Fetch watched events in [start_block, end_block] and enqueue them in chain order.
        The range is only marked scanned when every event type was fetched.
        """
        logger.debug("CometEventListener: Scanning blocks %s to %s", start_block, end_block)

        logs = []
        for event in self.watched_events:
            for log in self.reader.get_account_events(event["name"], start_block, end_block):
                logs.append((event, log))

        logs.sort(key=lambda item: (item[1].get("blockNumber", 0), item[1].get("logIndex", 0)))

        for event, log in logs:
            self.events.put(self._to_account_event(event, log, live))

        self.last_scanned_block = end_block
        if logs:
            logger.info(
                "CometEventListener: Found %s events in blocks %s to %s", len(logs), start_block, end_block,
            )
        return len(logs)

    def batch_account_logs_on_startup(self) -> int:
        """
        Repopulate the ledger from recent history, since the watch set is not persisted.

        Returns:
            int: Number of events enqueued.
        """
        if self.bootstrap_blocks <= 0:
            return 0

        current_block = self._guarded(self.reader.latest_block, "reading head block for bootstrap")
        if current_block is None:
            return 0

        start_block = max(0, current_block - self.bootstrap_blocks)
        logger.info("CometEventListener: Starting batch scan from block %s to %s.", start_block, current_block)

        total = 0
        while start_block <= current_block and not self.stop_event.is_set():
            end_block = min(start_block + self.batch_size - 1, current_block)
            found = self._guarded(
                lambda: self.scan_block_range(start_block, end_block, live=False), "bootstrap scan"
            )
            if found is None:
                logger.warning(
                    "CometEventListener: Bootstrap skipped blocks %s to %s, accounts there are picked up by later events",
                    start_block, end_block,
                )
            else:
                total += found
            start_block = end_block + 1
            if self.batch_interval:
                self.stop_event.wait(self.batch_interval)

        self.last_scanned_block = current_block
        logger.info("CometEventListener: Finished batch scan up to block %s, %s events.", current_block, total)
        return total

    def dispatch_events(self) -> None:
        """
        Consume the event queue until stopped.
        Should be run in a standalone thread.
        """
        logger.info("CometEventListener: Dispatcher started.")
        while not self.stop_event.is_set():
            try:
                event = self.events.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                self.handle_event(event)
            except Exception as ex:
                logger.error("CometEventListener: Exception handling %s: %s", event, ex, exc_info=True)
            finally:
                self.events.task_done()
        logger.info("CometEventListener: Dispatcher stopped.")

    def handle_event(self, event: AccountEvent) -> None:
        added = self.ledger.add(event.account)
        logger.info(
            "CometEventListener: %s event for %s in block %s%s",
            event.event_name, event.account, event.block_number, " (new account)" if added else "",
        )
        if event.immediate:
            self.monitor.submit_evaluation(event.account)

    def _to_account_event(self, event: Dict[str, Any], log: Any, live: bool) -> AccountEvent:
        tx_hash = log.get("transactionHash")
        return AccountEvent(
            event_name=event["name"],
            account=Web3.to_checksum_address(log["args"][event["account_arg"]]),
            immediate=live and bool(event.get("immediate", False)),
            block_number=int(log.get("blockNumber", 0)),
            tx_hash=Web3.to_hex(tx_hash) if tx_hash is not None else None,
        )

    def _guarded(self, func, description: str):
        """Run a read, reporting a lost transport to the supervisor and logging other failures."""
        try:
            return func()
        except TransientReadError as ex:
            if ex.connection_lost:
                self.supervisor.report_error(ex)
            else:
                logger.warning("CometEventListener: Transient error %s: %s", description, ex)
        except PermanentReadError as ex:
            logger.error("CometEventListener: Permanent error %s: %s", description, ex)
        except Exception as ex:
            logger.error("CometEventListener: Unexpected exception %s: %s", description, ex, exc_info=True)
        return None
