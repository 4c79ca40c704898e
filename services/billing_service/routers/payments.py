"""Admin listing of the payment ledger."""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from libs.db.session import get_async_db
from services.access_service.dependencies import require_admin
from services.billing_service.models import Payment
from services.billing_service.schemas import PaymentResponse
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("", response_model=List[PaymentResponse], dependencies=[Depends(require_admin)])
async def list_payments(
    order_id: Optional[uuid.UUID] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_async_db),
):
    query = select(Payment).order_by(desc(Payment.created_at))
    if order_id is not None:
        query = query.where(Payment.order_id == order_id)
    result = await db.execute(query.limit(limit).offset(offset))
    return result.scalars().all()
