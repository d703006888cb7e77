import logging

from fastapi import APIRouter, HTTPException, status

from clipstage.api.deps import Services
from clipstage.schemas.player import ApprovalDecisionRequest, ApprovalDecisionResponse
from clipstage.services.approval import evaluate_reply

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/approvals")
async def list_approvals(services: Services) -> list[dict]:
    return [
        {"id": r.id, "clipId": r.clip.id, "title": r.clip.title, "requestedBy": r.requested_by}
        for r in services.approvals.pending
    ]


@router.post("/approvals/{request_id}", response_model=ApprovalDecisionResponse)
async def decide_approval(
    request_id: str, body: ApprovalDecisionRequest, services: Services
) -> ApprovalDecisionResponse:
    approved = body.approved
    if approved is None:
        approved = evaluate_reply(body.message or "")
        if approved is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Reply is neither an approval nor a denial",
            )
    request = services.approvals.decide(request_id, approved)
    return ApprovalDecisionResponse(id=request.id, decision=request.decision.value)
