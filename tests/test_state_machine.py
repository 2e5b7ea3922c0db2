"""Unit tests for the candidate state machine."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from moai.services.state_machine import (
    CandidateStatus,
    as_utc,
    effective_status,
    transition,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
LATER = NOW + timedelta(days=6)

A = uuid.uuid4()
B = uuid.uuid4()
PAIR = (A, B)


class TestTransitionFromPending:
    """Every decision a pending candidate can take."""

    def test_no_responses_stays_pending(self):
        assert transition(CandidateStatus.PENDING, {}, PAIR, NOW, LATER) is CandidateStatus.PENDING

    def test_single_yes_stays_pending(self):
        result = transition(CandidateStatus.PENDING, {A: True}, PAIR, NOW, LATER)
        assert result is CandidateStatus.PENDING

    def test_both_yes_accepts(self):
        result = transition(CandidateStatus.PENDING, {A: True, B: True}, PAIR, NOW, LATER)
        assert result is CandidateStatus.ACCEPTED

    @pytest.mark.parametrize(
        "responses",
        [{A: False}, {B: False}, {A: True, B: False}, {A: False, B: True}, {A: False, B: False}],
    )
    def test_any_no_rejects(self, responses):
        result = transition(CandidateStatus.PENDING, responses, PAIR, NOW, LATER)
        assert result is CandidateStatus.REJECTED

    def test_past_deadline_expires(self):
        result = transition(
            CandidateStatus.PENDING, {A: True, B: True}, PAIR, LATER + timedelta(seconds=1), LATER
        )
        assert result is CandidateStatus.EXPIRED

    def test_exactly_at_deadline_is_still_open(self):
        result = transition(CandidateStatus.PENDING, {A: True, B: True}, PAIR, LATER, LATER)
        assert result is CandidateStatus.ACCEPTED

    def test_outsider_responses_are_ignored(self):
        outsider = uuid.uuid4()
        result = transition(
            CandidateStatus.PENDING, {A: True, outsider: True}, PAIR, NOW, LATER
        )
        assert result is CandidateStatus.PENDING
        result = transition(
            CandidateStatus.PENDING, {A: True, B: True, outsider: False}, PAIR, NOW, LATER
        )
        assert result is CandidateStatus.ACCEPTED


class TestTerminalStates:
    """accepted, rejected and expired never move."""

    @pytest.mark.parametrize(
        "status",
        [CandidateStatus.ACCEPTED, CandidateStatus.REJECTED, CandidateStatus.EXPIRED],
    )
    @pytest.mark.parametrize(
        "responses",
        [{}, {A: True, B: True}, {A: False}, {A: True, B: False}],
    )
    def test_terminal_is_sticky(self, status, responses):
        assert transition(status, responses, PAIR, NOW, LATER) is status
        assert transition(status, responses, PAIR, LATER + timedelta(days=1), LATER) is status

    def test_is_terminal_flags(self):
        assert not CandidateStatus.PENDING.is_terminal
        assert CandidateStatus.ACCEPTED.is_terminal
        assert CandidateStatus.REJECTED.is_terminal
        assert CandidateStatus.EXPIRED.is_terminal


class TestEffectiveStatus:
    """Read-side view of a stored status."""

    def test_stale_pending_reads_as_expired(self):
        assert effective_status("pending", LATER + timedelta(minutes=1), LATER) is CandidateStatus.EXPIRED

    def test_fresh_pending_reads_as_pending(self):
        assert effective_status("pending", NOW, LATER) is CandidateStatus.PENDING

    def test_accepted_survives_deadline(self):
        assert effective_status("accepted", LATER + timedelta(days=3), LATER) is CandidateStatus.ACCEPTED

    def test_naive_deadline_is_treated_as_utc(self):
        naive = LATER.replace(tzinfo=None)
        assert effective_status("pending", LATER + timedelta(seconds=1), naive) is CandidateStatus.EXPIRED

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            effective_status("maybe", NOW, LATER)


class TestAsUtc:
    def test_converts_offsets(self):
        plus_two = timezone(timedelta(hours=2))
        value = datetime(2026, 10, 19, 14, 0, tzinfo=plus_two)
        assert as_utc(value) == NOW
        assert as_utc(value).tzinfo == timezone.utc
