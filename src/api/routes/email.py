from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.dependencies import get_context
from notifications.verification import VerificationOutcome
from services.context import AppContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/email", tags=["email"])

VERIFY_MESSAGES = {
    VerificationOutcome.MISSING: "No verification code was requested for this email",
    VerificationOutcome.EXPIRED: "Verification code expired",
    VerificationOutcome.INVALID: "Invalid verification code",
}


class SendVerificationRequest(BaseModel):
    email: str | None = None
    name: str = ""


class VerifyCodeRequest(BaseModel):
    email: str | None = None
    code: str | None = None


def _require_email(raw: str | None) -> str:
    email = (raw or "").strip()
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise HTTPException(status_code=400, detail="Invalid email address")
    return email


@router.post("/verification/send")
def send_verification(
    body: SendVerificationRequest,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    email = _require_email(body.email)
    code = context.verification_codes.issue(email)
    result = context.email.send_verification_email(email, body.name.strip(), code)
    if not result.success:
        context.verification_codes.discard(email)
        raise HTTPException(status_code=500, detail="Failed to send verification email. Try again later.")
    return {
        "success": True,
        "message": "Verification email sent",
        "expires_in_minutes": context.email.code_expiry_minutes,
    }


@router.post("/verification/verify")
def verify_code(
    body: VerifyCodeRequest,
    context: Annotated[AppContext, Depends(get_context)],
) -> dict[str, Any]:
    email = _require_email(body.email)
    if not body.code:
        raise HTTPException(status_code=400, detail="Verification code is required")
    outcome = context.verification_codes.verify(email, body.code)
    if outcome is not VerificationOutcome.VERIFIED:
        logger.info("Verification for %s failed: %s", email, outcome)
        raise HTTPException(status_code=400, detail=VERIFY_MESSAGES[outcome])
    return {"success": True, "message": "Email verified"}
