"""Tests for moderator approval requests."""

import pytest

from clipstage.exceptions import ApprovalNotFoundError
from clipstage.services.approval import ApprovalDecision, ApprovalService, evaluate_reply
from clipstage.services.cancellation import CancellationToken
from conftest import make_clip


class TestEvaluateReply:
    @pytest.mark.parametrize("text", ["yes", "Sure, play it", "OK", "seemsgood", "yeah go ahead"])
    def test_affirmative(self, text):
        assert evaluate_reply(text) is True

    @pytest.mark.parametrize("text", ["no", "Nope", "not ok", "not okay", "thumbsdown"])
    def test_denial(self, text):
        """Denials win even when the text also contains an approval word."""
        assert evaluate_reply(text) is False

    @pytest.mark.parametrize("text", ["", "hmm", "maybe later"])
    def test_undecided(self, text):
        assert evaluate_reply(text) is None


class TestApprovalService:
    def test_ids_are_short_and_unique(self):
        service = ApprovalService()
        ids = {service.create(make_clip()).id for _ in range(20)}
        assert len(ids) == 20
        assert all(len(i) == 8 for i in ids)

    def test_decide_unknown_request(self):
        with pytest.raises(ApprovalNotFoundError):
            ApprovalService().decide("deadbeef", approved=True)

    def test_decide_twice(self):
        service = ApprovalService()
        request = service.create(make_clip())
        service.decide(request.id, approved=False)

        with pytest.raises(ApprovalNotFoundError):
            service.decide(request.id, approved=True)
        assert service.pending == []

    @pytest.mark.asyncio
    async def test_decided_request_returns_decision(self):
        service = ApprovalService(timeout_seconds=1.0, poll_interval_seconds=0.01)
        request = service.create(make_clip())
        service.decide(request.id, approved=True)

        assert await service.wait_for_decision(request) is ApprovalDecision.APPROVED
        with pytest.raises(ApprovalNotFoundError):
            service.decide(request.id, approved=True)

    @pytest.mark.asyncio
    async def test_expiry(self):
        service = ApprovalService(timeout_seconds=0.05, poll_interval_seconds=0.01)
        request = service.create(make_clip())

        assert await service.wait_for_decision(request) is ApprovalDecision.EXPIRED
        assert service.pending == []

    @pytest.mark.asyncio
    async def test_cancellation_denies(self):
        service = ApprovalService(timeout_seconds=5.0, poll_interval_seconds=0.01)
        request = service.create(make_clip())
        token = CancellationToken()
        token.cancel()

        assert await service.wait_for_decision(request, token) is ApprovalDecision.DENIED
