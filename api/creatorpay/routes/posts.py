from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.db.database import get_db
from creatorpay.schemas.access import PostAccessResponse
from creatorpay.services.access_service import AccessService

router = APIRouter()


@router.get('/{post_id}/access', response_model=PostAccessResponse)
async def get_post_access(
    post_id: int,
    user_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Content, paywall, subscribe or follow: what this user sees for the post."""
    decision = await AccessService(db).get_post_access(post_id, user_id)
    if decision is None:
        raise HTTPException(status_code=404, detail='Post not found')
    return PostAccessResponse(
        post_id=post_id,
        can_view=decision.can_view,
        gate=decision.gate.value,
        reason=decision.reason,
    )
