"""
Tests for connection supervision and the bot's exit codes.
"""

import threading
from unittest.mock import MagicMock

import pytest

from comet_liquidator.liquidation.bot_manager import LiquidationBot
from comet_liquidator.liquidation.connection_supervisor import (
    EXIT_CONNECTION_FAILURE,
    EXIT_OK,
    EXIT_STARTUP_FAILURE,
    ConnectionSupervisor,
)
from comet_liquidator.liquidation.exceptions import TransientReadError
from conftest import make_reader


@pytest.fixture()
def w3():
    w3 = MagicMock()
    w3.is_connected.return_value = True
    return w3


@pytest.fixture()
def supervisor(w3, stop_event):
    return ConnectionSupervisor(w3, stop_event, check_interval=0.01)


def test_healthy_connection_keeps_running(supervisor, stop_event):
    assert supervisor.check() is True
    assert not stop_event.is_set()
    assert supervisor.exit_code == EXIT_OK


def test_close_stops_everything(supervisor, w3, stop_event):
    w3.is_connected.return_value = False

    assert supervisor.check() is False
    assert stop_event.is_set()
    assert supervisor.failed
    assert supervisor.exit_code == EXIT_CONNECTION_FAILURE


def test_probe_error_stops_everything(supervisor, w3, stop_event):
    w3.is_connected.side_effect = OSError("socket closed")

    assert supervisor.check() is False
    assert stop_event.is_set()
    assert "socket closed" in str(supervisor.failure)


def test_first_failure_wins(supervisor):
    supervisor.report_error(RuntimeError("first"))
    supervisor.report_close()

    assert "first" in str(supervisor.failure)


def test_watch_trips_and_exits(supervisor, w3, stop_event):
    w3.is_connected.return_value = False
    thread = threading.Thread(target=supervisor.watch)
    thread.start()
    thread.join(5)

    assert not thread.is_alive()
    assert stop_event.is_set()
    assert supervisor.exit_code == EXIT_CONNECTION_FAILURE


@pytest.fixture()
def fast_config(offline_config):
    for key, value in {
        "HEALTH_CHECK_INTERVAL": 0.01,
        "SCAN_INTERVAL": 0.01,
        "SWEEP_INTERVAL": 0.01,
        "BOOTSTRAP_BLOCKS": 0,
    }.items():
        offline_config._global[key] = value
    return offline_config


@pytest.fixture()
def reader():
    reader = make_reader(eligible=False)
    reader.latest_block.return_value = 100
    reader.get_account_events.return_value = []
    return reader


def test_bot_exits_with_connection_failure_code(fast_config, reader):
    fast_config.w3.is_connected.return_value = False
    bot = LiquidationBot(fast_config, notify=False, reader=reader, liquidator=MagicMock())

    assert bot.run() == EXIT_CONNECTION_FAILURE
    assert bot.stop_event.is_set()
    assert bot.monitor.submit_evaluation("0x1111111111111111111111111111111111111111") is None


def test_bot_exits_when_listener_loses_connection(fast_config, reader):
    fast_config.w3.is_connected.return_value = True
    reader.latest_block.side_effect = TransientReadError("refused", connection_lost=True)
    bot = LiquidationBot(fast_config, notify=False, reader=reader, liquidator=MagicMock())

    assert bot.run() == EXIT_CONNECTION_FAILURE


def test_bot_startup_failure_code(fast_config, reader):
    reader.base_asset.side_effect = TransientReadError("refused")
    bot = LiquidationBot(fast_config, notify=False, reader=reader, liquidator=MagicMock())

    assert bot.run() == EXIT_STARTUP_FAILURE
