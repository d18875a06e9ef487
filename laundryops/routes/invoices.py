"""
Invoice Routes
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_roles
from ..database import get_db
from ..models import User
from ..schemas import InvoiceCreate, InvoiceListResponse, InvoiceResponse, InvoiceStatusUpdate
from ..services.invoice_service import InvoiceService
from ..services.status_automation import mark_overdue_invoices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    return InvoiceService(db)


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    status: Optional[str] = Query(None),
    customer_id: Optional[str] = Query(None),
    order_id: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    search: Optional[str] = Query(None, description="Invoice number or customer name"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoices, total = service.list_invoices(
        current_user.business_id,
        status=status,
        customer_id=customer_id,
        order_id=order_id,
        date_from=date_from,
        date_to=date_to,
        search=search,
        limit=limit,
        offset=offset,
    )
    return InvoiceListResponse(
        items=[InvoiceResponse.model_validate(i) for i in invoices],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats")
async def get_invoice_stats(
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_stats(current_user.business_id)


@router.post("/mark-overdue")
async def mark_invoices_overdue(
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    """Move sent invoices past their due date to OVERDUE"""
    return mark_overdue_invoices(db, current_user.business_id)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: str,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_invoice(invoice_id, current_user.business_id)


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Issue the invoice of an order"""
    return service.create_invoice(data, current_user.business_id)


@router.post("/{invoice_id}/status", response_model=InvoiceResponse)
async def change_invoice_status(
    invoice_id: str,
    data: InvoiceStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.change_status(invoice_id, data, current_user.business_id)
