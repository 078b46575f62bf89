"""
Liveness supervision of the ledger client connection.
"""

import threading
from typing import Optional

from web3 import Web3

from .exceptions import ConnectionFailure
from .logging_config import setup_logger

logger = setup_logger()

EXIT_OK = 0
EXIT_STARTUP_FAILURE = 1
EXIT_CONNECTION_FAILURE = 2


class ConnectionSupervisor:
    """
    Turns transport error and close signals into a process-wide stop.

    The first signal wins: it records the failure and sets the shared stop event
    that every trigger source polls. Recovery is left to the external process
    supervisor, which restarts on the non-zero exit code.
    """

    def __init__(self, w3: Web3, stop_event: threading.Event, check_interval: float = 15):
        self.w3 = w3
        self.stop_event = stop_event
        self.check_interval = check_interval
        self.failure: Optional[ConnectionFailure] = None
        self._lock = threading.Lock()

    @property
    def failed(self) -> bool:
        return self.failure is not None

    @property
    def exit_code(self) -> int:
        return EXIT_CONNECTION_FAILURE if self.failed else EXIT_OK

    def report_error(self, error: BaseException) -> None:
        """Transport reported an error."""
        self._trip(ConnectionFailure(f"connection error: {error}"))

    def report_close(self) -> None:
        """Transport closed unexpectedly."""
        self._trip(ConnectionFailure("connection closed"))

    def _trip(self, failure: ConnectionFailure) -> None:
        with self._lock:
            if self.failure is not None:
                return
            self.failure = failure
        logger.critical("ConnectionSupervisor: %s, stopping all trigger sources", failure)
        self.stop_event.set()

    def check(self) -> bool:
        """Probe the connection once. Returns False and trips on a dead connection."""
        try:
            connected = self.w3.is_connected()
        except Exception as ex:
            self.report_error(ex)
            return False

        if not connected:
            self.report_close()
            return False
        return True

    def watch(self) -> None:
        """
        Probe the connection until stopped.
        Should be run in a standalone thread.
        """
        logger.info("ConnectionSupervisor: Watching connection every %s seconds", self.check_interval)
        while not self.stop_event.wait(self.check_interval):
            self.check()
