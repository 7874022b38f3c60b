import logging

import pytest

from typedlite import native
from typedlite.errors import Failure, TooBusy
from typedlite.gate import BUSY_RETRY_INTERVAL, CallGate


def codes(*rcs):
    it = iter(rcs)
    calls = []

    def call():
        calls.append(1)
        return next(it)

    return call, calls


class Sleeps(list):
    def __call__(self, seconds):
        self.append(seconds)


def messages(rc):
    return f"message for {rc}"


def test_success_codes_pass_through():
    gate = CallGate(messages, sleep=Sleeps())
    assert gate(lambda: native.SQLITE_OK) == native.SQLITE_OK
    assert gate(lambda: native.SQLITE_ROW) == native.SQLITE_ROW
    assert gate(lambda: native.SQLITE_DONE) == native.SQLITE_DONE

def test_failure_carries_code_and_message():
    gate = CallGate(messages, sleep=Sleeps())
    with pytest.raises(Failure) as excinfo:
        gate(lambda: native.SQLITE_CONSTRAINT)
    assert excinfo.value.code == native.SQLITE_CONSTRAINT
    assert excinfo.value.message == "message for 19"

def test_busy_is_retried_until_success():
    sleeps = Sleeps()
    gate = CallGate(messages, sleep=sleeps)
    call, calls = codes(native.SQLITE_BUSY, native.SQLITE_BUSY, native.SQLITE_DONE)
    assert gate(call) == native.SQLITE_DONE
    assert len(calls) == 3
    assert sleeps == [BUSY_RETRY_INTERVAL, BUSY_RETRY_INTERVAL]

def test_busy_budget_exhausted(caplog):
    sleeps = Sleeps()
    gate = CallGate(messages, max_busy_retries=3, sleep=sleeps)
    call, calls = codes(*([native.SQLITE_BUSY] * 5))
    with caplog.at_level(logging.WARNING, logger="typedlite.gate"):
        with pytest.raises(TooBusy) as excinfo:
            gate(call)
    assert excinfo.value.attempts == 3
    assert len(calls) == 3
    assert "still busy" in caplog.text

def test_locked_is_not_retried():
    sleeps = Sleeps()
    gate = CallGate(messages, sleep=sleeps)
    call, calls = codes(native.SQLITE_LOCKED, native.SQLITE_OK)
    with pytest.raises(Failure) as excinfo:
        gate(call)
    assert excinfo.value.code == native.SQLITE_LOCKED
    assert len(calls) == 1
    assert sleeps == []

def test_busy_then_failure_reports_failure():
    gate = CallGate(messages, sleep=Sleeps())
    call, _ = codes(native.SQLITE_BUSY, native.SQLITE_IOERR)
    with pytest.raises(Failure) as excinfo:
        gate(call)
    assert excinfo.value.code == native.SQLITE_IOERR

def test_extended_busy_code_counts_as_busy():
    gate = CallGate(messages, sleep=Sleeps())
    # SQLITE_BUSY_SNAPSHOT
    call, calls = codes(native.SQLITE_BUSY | (2 << 8), native.SQLITE_OK)
    assert gate(call) == native.SQLITE_OK
    assert len(calls) == 2

@pytest.mark.parametrize("value", [0, -1, 1.5, "3", True, None])
def test_invalid_retry_budget(value):
    with pytest.raises(ValueError):
        CallGate(messages, max_busy_retries=value)

def test_retry_budget_is_adjustable():
    gate = CallGate(messages, sleep=Sleeps())
    gate.max_busy_retries = 1
    call, calls = codes(native.SQLITE_BUSY, native.SQLITE_OK)
    with pytest.raises(TooBusy):
        gate(call)
    assert len(calls) == 1
