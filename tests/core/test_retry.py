"""Tests for the retry-once conflict policy."""

import logging

import pytest

from core.exceptions import ConflictError, ValidationError
from core.services.retry import retry_on_conflict


class Flaky:
    """Raises the queued outcomes in order, counting calls."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    @retry_on_conflict
    def run(self, value):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return f"{outcome}:{value}"


def test_success_runs_once():
    flaky = Flaky("ok")
    assert flaky.run("a") == "ok:a"
    assert flaky.calls == 1


def test_single_conflict_is_retried(caplog):
    caplog.set_level(logging.WARNING, logger="core.services.retry")
    flaky = Flaky(ConflictError("could not serialize access"), "ok")

    assert flaky.run("a") == "ok:a"
    assert flaky.calls == 2
    assert "Flaky.run conflicted, retrying once" in caplog.text


def test_second_conflict_propagates():
    flaky = Flaky(ConflictError("first"), ConflictError("second"), "never")

    with pytest.raises(ConflictError, match="second"):
        flaky.run("a")
    assert flaky.calls == 2


def test_other_errors_are_not_retried():
    flaky = Flaky(ValidationError("bad amount"), "never")

    with pytest.raises(ValidationError):
        flaky.run("a")
    assert flaky.calls == 1


def test_wrapper_keeps_method_name():
    assert Flaky.run.__name__ == "run"
