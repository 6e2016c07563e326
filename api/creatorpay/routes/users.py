from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.db.database import get_db
from creatorpay.models.ledger import TransactionType
from creatorpay.schemas.payments import TransactionEntry, BalanceResponse
from creatorpay.services.ledger_service import LedgerService, UserNotFound

router = APIRouter()


@router.get('/{user_id}/balance', response_model=BalanceResponse)
async def get_balance(user_id: int, db: AsyncSession = Depends(get_db)):
    """Current token balance, read from the ledger."""
    try:
        balance = await LedgerService(db).get_balance(user_id)
    except UserNotFound:
        raise HTTPException(status_code=404, detail='User not found')
    return BalanceResponse(user_id=user_id, balance=balance)


@router.get('/{user_id}/transactions', response_model=list[TransactionEntry])
async def get_transactions(
    user_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    type: TransactionType | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Transaction history, newest first."""
    return await LedgerService(db).get_history(
        user_id, limit=limit, offset=offset, tx_type=type.value if type else None,
    )
