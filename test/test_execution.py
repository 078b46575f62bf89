"""
Tests for the execution engine.
"""

import threading
import time
from unittest.mock import MagicMock

import pytest
from web3.exceptions import ContractLogicError, TimeExhausted

from comet_liquidator.liquidation.exceptions import RevertedExecution, SubmissionFailure
from comet_liquidator.liquidation.execution import ExecutionEngine
from comet_liquidator.liquidation.models import ExecutionOutcome
from conftest import BASE_ASSET, TEST_ACCOUNT, TX_HASH, WETH, make_candidate


@pytest.fixture()
def liquidator():
    liquidator = MagicMock()
    contract_call = liquidator.functions.absorbAndArbitrage.return_value
    contract_call.estimate_gas.return_value = 100000
    contract_call.build_transaction.return_value = {"to": "0xliquidator", "data": "0x"}
    return liquidator


@pytest.fixture()
def evaluator():
    evaluator = MagicMock()
    evaluator.evaluate.return_value = make_candidate()
    return evaluator


@pytest.fixture()
def engine(offline_config, ledger, evaluator, liquidator, stop_event):
    ledger.add(TEST_ACCOUNT)
    return ExecutionEngine(offline_config, ledger, evaluator, liquidator=liquidator, stop_event=stop_event)


def test_confirmed_execution_removes_account(engine, ledger):
    records = []
    engine.add_record_listener(records.append)

    attempt = engine.execute(make_candidate())

    assert attempt.outcome is ExecutionOutcome.CONFIRMED
    assert attempt.tx_hash == TX_HASH
    assert TEST_ACCOUNT not in ledger
    assert len(records) == 1
    assert records[0].succeeded
    assert records[0].tx_hash == TX_HASH
    assert list(engine.records) == records
    assert not engine.is_in_flight(TEST_ACCOUNT)


def test_gas_budget_applies_safety_multiplier(engine, liquidator, offline_config):
    attempt = engine.execute(make_candidate())

    assert attempt.gas_budget == 120000
    tx_params = liquidator.functions.absorbAndArbitrage.return_value.build_transaction.call_args[0][0]
    assert tx_params["gas"] == 120000
    assert tx_params["nonce"] == 7
    assert tx_params["from"] == offline_config.LIQUIDATOR_EOA
    assert tx_params["gasPrice"] == 20


def test_call_arguments_come_from_candidate(engine, liquidator, offline_config):
    engine.execute(make_candidate())

    args = liquidator.functions.absorbAndArbitrage.call_args[0]
    assert args[0] == offline_config.COMET_ADDRESS
    assert args[1] == [TEST_ACCOUNT]
    assert args[2] == [WETH]
    assert args[4] == [10**21]
    assert args[5] == BASE_ASSET
    assert args[6] == 3000


def test_non_actionable_candidate_is_never_submitted(engine, liquidator, offline_config):
    assert engine.execute(make_candidate(net_profit=-10, actionable=False)) is None

    liquidator.functions.absorbAndArbitrage.assert_not_called()
    offline_config.w3.eth.send_raw_transaction.assert_not_called()


def test_stale_candidate_is_not_submitted(engine, evaluator, ledger, offline_config):
    evaluator.evaluate.return_value = make_candidate(net_profit=-10, actionable=False)

    attempt = engine.execute(make_candidate())

    assert attempt.outcome is ExecutionOutcome.FAILED
    assert isinstance(attempt.error, SubmissionFailure)
    offline_config.w3.eth.send_raw_transaction.assert_not_called()
    assert TEST_ACCOUNT in ledger


def test_reverted_execution_keeps_account(engine, ledger, offline_config):
    offline_config.w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 100}
    records = []
    engine.add_record_listener(records.append)

    attempt = engine.execute(make_candidate())

    assert attempt.outcome is ExecutionOutcome.REVERTED
    assert isinstance(attempt.error, RevertedExecution)
    assert TEST_ACCOUNT in ledger
    assert records[0].outcome is ExecutionOutcome.REVERTED
    assert records[0].tx_hash == TX_HASH
    assert not engine.is_in_flight(TEST_ACCOUNT)


def test_confirmation_timeout_is_failed_not_reverted(engine, ledger, offline_config):
    offline_config.w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("no receipt")

    attempt = engine.execute(make_candidate())

    assert attempt.outcome is ExecutionOutcome.FAILED
    assert TEST_ACCOUNT in ledger
    assert not engine.is_in_flight(TEST_ACCOUNT)


def test_rejected_submission_keeps_account(engine, ledger, offline_config):
    offline_config.w3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")

    attempt = engine.execute(make_candidate())

    assert attempt.outcome is ExecutionOutcome.FAILED
    assert isinstance(attempt.error, SubmissionFailure)
    assert attempt.tx_hash is None
    assert TEST_ACCOUNT in ledger


def test_gas_estimation_revert_is_submission_failure(engine, liquidator, offline_config):
    liquidator.functions.absorbAndArbitrage.return_value.estimate_gas.side_effect = ContractLogicError(
        "execution reverted"
    )

    attempt = engine.execute(make_candidate())

    assert attempt.outcome is ExecutionOutcome.FAILED
    assert isinstance(attempt.error, SubmissionFailure)
    offline_config.w3.eth.send_raw_transaction.assert_not_called()


def test_no_execution_after_stop(engine, stop_event, liquidator):
    stop_event.set()

    assert engine.execute(make_candidate()) is None
    liquidator.functions.absorbAndArbitrage.assert_not_called()


def test_record_listener_failure_does_not_break_execution(engine, ledger):
    engine.add_record_listener(MagicMock(side_effect=RuntimeError("notifier down")))

    attempt = engine.execute(make_candidate())

    assert attempt.outcome is ExecutionOutcome.CONFIRMED
    assert TEST_ACCOUNT not in ledger


def test_second_trigger_for_in_flight_account_is_dropped(engine, offline_config):
    release = threading.Event()

    def slow_receipt(*args, **kwargs):
        release.wait(5)
        return {"status": 1, "blockNumber": 100}

    offline_config.w3.eth.wait_for_transaction_receipt.side_effect = slow_receipt

    results = []
    first = threading.Thread(target=lambda: results.append(engine.execute(make_candidate())))
    first.start()

    deadline = time.time() + 5
    while not engine.is_in_flight(TEST_ACCOUNT) and time.time() < deadline:
        time.sleep(0.01)
    assert engine.is_in_flight(TEST_ACCOUNT)
    assert engine.in_flight() == [TEST_ACCOUNT]

    assert engine.execute(make_candidate()) is None

    release.set()
    first.join(5)

    assert results[0].outcome is ExecutionOutcome.CONFIRMED
    assert offline_config.w3.eth.send_raw_transaction.call_count == 1
    assert not engine.is_in_flight(TEST_ACCOUNT)
