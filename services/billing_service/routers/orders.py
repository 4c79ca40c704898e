"""Read access to the order ledger."""

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.access_service.dependencies import (
    get_approval_gate,
    raise_for_decision,
    require_approved_customer,
)
from services.access_service.gate import ApprovalGate
from services.access_service.models import GateDecision, RouteKind
from services.billing_service.models import Order
from services.billing_service.schemas import OrderResponse
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/orders", tags=["orders"])

# Denials that apply to the caller, not to the order they asked for
_CALLER_DENIALS = (GateDecision.UNAUTHENTICATED, GateDecision.BLOCKED, GateDecision.ERROR)


@router.get("/me", response_model=List[OrderResponse])
async def list_my_orders(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: AuthUser = Depends(require_approved_customer),
    db: AsyncSession = Depends(get_async_db),
):
    """The caller's orders, newest first."""
    query = (
        select(Order)
        .where(Order.user_email == current_user.normalized_email)
        .order_by(desc(Order.created_at))
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    gate: ApprovalGate = Depends(get_approval_gate),
    db: AsyncSession = Depends(get_async_db),
):
    """
    A single order. Approved customers see their own, admins see any.

    A blocked caller gets 403 whether or not they own the order; anyone else
    asking for an order they may not read gets 404.
    """
    order = await db.get(Order, order_id)

    if current_user.role != "service_role":
        if order is not None and order.user_email == current_user.normalized_email:
            raise_for_decision(await gate.decide(current_user.email, RouteKind.CUSTOMER))
        else:
            decision = await gate.decide(current_user.email, RouteKind.ADMIN)
            if decision in _CALLER_DENIALS:
                raise_for_decision(decision)
            if not decision.allowed:
                order = None

    if order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Order not found"
        )
    return order
