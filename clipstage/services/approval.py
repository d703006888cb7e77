"""Moderator approval for clips that must be confirmed before they play."""

import asyncio
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from clipstage.constants.messages import AFFIRMATIVE_WORDS, DENIAL_WORDS
from clipstage.exceptions import ApprovalNotFoundError
from clipstage.schemas.clip import ClipDescriptor
from clipstage.services.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class ApprovalDecision(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"


@dataclass
class ApprovalRequest:
    id: str
    clip: ClipDescriptor
    expires_at: float
    requested_by: str | None = None
    decision: ApprovalDecision = field(default=ApprovalDecision.PENDING)


def evaluate_reply(text: str) -> bool | None:
    """Map a free-text chat reply to approve (True), deny (False) or neither.

    Denial words are checked first so "not ok" is not read as "ok".
    """
    lowered = text.lower()
    if any(word in lowered for word in DENIAL_WORDS):
        return False
    if any(word in lowered for word in AFFIRMATIVE_WORDS):
        return True
    return None


class ApprovalService:
    """Pending approval requests. Nothing here outlives its request."""

    def __init__(
        self,
        timeout_seconds: float = 60.0,
        poll_interval_seconds: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._timeout = timeout_seconds
        self._poll_interval = poll_interval_seconds
        self._clock = clock
        self._requests: dict[str, ApprovalRequest] = {}

    @property
    def pending(self) -> list[ApprovalRequest]:
        return [r for r in self._requests.values() if r.decision is ApprovalDecision.PENDING]

    def create(self, clip: ClipDescriptor, requested_by: str | None = None) -> ApprovalRequest:
        request_id = secrets.token_hex(4)
        while request_id in self._requests:
            request_id = secrets.token_hex(4)
        request = ApprovalRequest(
            id=request_id,
            clip=clip,
            expires_at=self._clock() + self._timeout,
            requested_by=requested_by,
        )
        self._requests[request_id] = request
        logger.info(f"Approval {request_id} opened for clip {clip.id}")
        return request

    def decide(self, request_id: str, approved: bool) -> ApprovalRequest:
        request = self._requests.get(request_id)
        if request is None or request.decision is not ApprovalDecision.PENDING:
            raise ApprovalNotFoundError(request_id)
        request.decision = ApprovalDecision.APPROVED if approved else ApprovalDecision.DENIED
        logger.info(f"Approval {request_id} {request.decision.value}")
        return request

    async def wait_for_decision(
        self, request: ApprovalRequest, cancel: CancellationToken | None = None
    ) -> ApprovalDecision:
        """Poll until decided, cancelled or expired. Expiry counts as denial."""
        try:
            while self._clock() < request.expires_at:
                if request.decision is not ApprovalDecision.PENDING:
                    return request.decision
                if cancel is not None:
                    if await cancel.wait(self._poll_interval):
                        request.decision = ApprovalDecision.DENIED
                        return request.decision
                else:
                    await asyncio.sleep(self._poll_interval)
            if request.decision is ApprovalDecision.PENDING:
                request.decision = ApprovalDecision.EXPIRED
                logger.info(f"Approval {request.id} expired")
            return request.decision
        finally:
            self._requests.pop(request.id, None)
