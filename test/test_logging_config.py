"""
Tests for the log formatter.
"""

import logging
import sys

from comet_liquidator.liquidation.logging_config import DetailedExceptionFormatter


def make_record(level, exc_info=None):
    return logging.LogRecord(
        name="comet_liquidator",
        level=level,
        pathname=__file__,
        lineno=42,
        msg="Liquidation of %s failed",
        args=("0xabc",),
        exc_info=exc_info,
        func="execute",
    )


def test_info_uses_standard_layout():
    output = DetailedExceptionFormatter().format(make_record(logging.INFO))

    assert output.endswith(" - INFO - MainThread - Liquidation of 0xabc failed")


def test_error_includes_location_and_single_traceback():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        exc_info = sys.exc_info()

    output = DetailedExceptionFormatter().format(make_record(logging.ERROR, exc_info))

    assert "test_logging_config.execute:42 - Liquidation of 0xabc failed" in output
    assert output.count("RuntimeError: boom") == 1
