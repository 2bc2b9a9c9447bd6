from __future__ import annotations

from mathcoach.tracking.answers import AnswerRegister


def test_offer_keeps_last_non_empty_value() -> None:
    register = AnswerRegister()

    assert register.offer("1") is True
    assert register.offer("12") is True
    assert register.offer("") is False
    assert register.offer(None) is False

    assert register.current == "12"
    assert register.last_value == "12"


def test_unchanged_value_does_not_refill_new_problem() -> None:
    register = AnswerRegister()
    register.offer("12")
    register.start_problem()

    assert register.offer("12") is False
    assert register.current == ""
    assert register.resolve("unknown") == "12"


def test_resolve_defaults_when_nothing_captured() -> None:
    assert AnswerRegister().resolve("unknown") == "unknown"
