"""Crisis policy: threshold, keyword matching, best-effort logging."""

from __future__ import annotations

from mindmate.domain.crisis import CRISIS_ACTION, SAFETY_MESSAGE, CrisisPolicy
from mindmate.domain.models import AnalysisResult
from mindmate.exceptions import PersistenceError


def _analysis(risk: float) -> AnalysisResult:
    return AnalysisResult(reply="I'm really glad you told me.", primary_emotion="sadness", risk_score=risk)


def test_threshold_is_inclusive():
    policy = CrisisPolicy()

    assert policy.should_fire(_analysis(0.7))
    assert policy.should_fire(_analysis(1.0))
    assert not policy.should_fire(_analysis(0.69))


def test_keywords_come_from_the_user_message_in_list_order():
    policy = CrisisPolicy()
    assert policy.match_keywords("I want to DIE, I think about suicide") == ("suicide", "die")


def test_keyword_match_is_substring():
    # "friend" contains "end"
    assert CrisisPolicy().match_keywords("my friend left") == ("end",)


def test_evaluate_below_threshold_returns_none():
    assert CrisisPolicy().evaluate(_analysis(0.3), "I want to die") is None


def test_evaluate_without_keywords_still_fires():
    event = CrisisPolicy().evaluate(_analysis(0.8), "everything is pointless")

    assert event is not None
    assert event.risk_score == 0.8
    assert event.matched_keywords == ()
    assert event.action_taken == CRISIS_ACTION


def test_handle_records_event_and_schedules_safety_message():
    recorded = []
    outcome = CrisisPolicy().handle(_analysis(0.9), "I want to hurt myself", recorded.append)

    assert outcome is not None
    assert outcome.persisted
    assert recorded == [outcome.event]
    assert outcome.event.matched_keywords == ("hurt",)
    assert outcome.safety_message.text == SAFETY_MESSAGE
    assert outcome.safety_message.delay_seconds == 0.5
    assert "988" in SAFETY_MESSAGE and "741741" in SAFETY_MESSAGE


def test_handle_still_returns_safety_message_when_logging_fails():
    def broken(event):
        raise PersistenceError("db down")

    outcome = CrisisPolicy().handle(_analysis(0.95), "I can't go on", broken)

    assert outcome is not None
    assert not outcome.persisted
    assert outcome.safety_message.text == SAFETY_MESSAGE


def test_handle_below_threshold_records_nothing():
    recorded = []
    assert CrisisPolicy().handle(_analysis(0.1), "kill time", recorded.append) is None
    assert recorded == []


def test_custom_threshold():
    policy = CrisisPolicy(threshold=0.5)
    assert policy.should_fire(_analysis(0.5))


def test_handle_survives_an_unexpected_recording_error():
    def broken(event):
        raise TypeError("'int' object is not iterable")

    outcome = CrisisPolicy().handle(_analysis(0.9), "I want to hurt myself", broken)

    assert not outcome.persisted
    assert outcome.safety_message.text == SAFETY_MESSAGE
