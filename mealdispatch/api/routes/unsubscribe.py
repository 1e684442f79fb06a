"""One-click unsubscribe from the weekly meal plan email.

Turning the flag off here is what makes the recipient source skip the
user in later campaigns.  The token's email must still match the
recipient, so a token issued before an address change is rejected.
"""
from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from mealdispatch.api.deps import get_db, get_unsubscribe_service
from mealdispatch.campaign.eligibility import normalize_email
from mealdispatch.core.security import UnsubscribeTokenService
from mealdispatch.db.repositories import RecipientRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["unsubscribe"])


@router.get("/unsubscribe", summary="Stop weekly meal plan emails for the token's recipient")
def unsubscribe(
    token: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    tokens: UnsubscribeTokenService = Depends(get_unsubscribe_service),
):
    claims = tokens.verify(token)
    if claims is None:
        raise HTTPException(status_code=400, detail="Invalid or expired unsubscribe link")

    try:
        recipient_id = UUID(claims.recipient_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid or expired unsubscribe link")

    repo = RecipientRepository(db)
    recipient = repo.get(recipient_id)
    if recipient is None or normalize_email(recipient.email) != normalize_email(claims.email):
        raise HTTPException(status_code=400, detail="Invalid or expired unsubscribe link")

    if recipient.weekly_meal_plans_enabled:
        repo.set_weekly_meal_plans_enabled(recipient, False)
        logger.info("Recipient %s unsubscribed from weekly meal plans", recipient.id)

    return {"status": "unsubscribed", "recipient_id": str(recipient.id)}
