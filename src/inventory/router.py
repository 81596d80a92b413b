from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List

from src.api_errors import http_error
from src.database import get_db
from src.errors import DomainError
from src.inventory.schemas import (
    TicketTypeCreate, TicketTypeResponse, OnSaleUpdate, AvailabilityResponse, SweepResult
)
from src.inventory.service import TicketTypeService

router = APIRouter()

# Ticket Type Endpoints
@router.post(
    "/events/{event_id}/ticket-types",
    response_model=TicketTypeResponse,
    status_code=status.HTTP_201_CREATED
)
def create_ticket_type(
    event_id: str,
    request: TicketTypeCreate,
    db: Session = Depends(get_db)
):
    """Add a ticket type to an event"""

    service = TicketTypeService(db)

    try:
        return service.create_ticket_type(event_id, request)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create ticket type: {str(e)}"
        )

@router.get("/events/{event_id}/ticket-types", response_model=List[TicketTypeResponse])
def list_ticket_types(
    event_id: str,
    include_inactive: bool = Query(False, description="Include ticket types taken off sale"),
    db: Session = Depends(get_db)
):
    return TicketTypeService(db).list_ticket_types(event_id, include_inactive=include_inactive)

@router.patch("/ticket-types/{ticket_type_id}/on-sale", response_model=TicketTypeResponse)
def update_on_sale(
    ticket_type_id: str,
    request: OnSaleUpdate,
    db: Session = Depends(get_db)
):
    """Put a ticket type on or off sale"""

    try:
        return TicketTypeService(db).set_on_sale(ticket_type_id, request.on_sale)
    except DomainError as e:
        raise http_error(e)

@router.get("/ticket-types/{ticket_type_id}/availability", response_model=AvailabilityResponse)
def get_availability(
    ticket_type_id: str,
    db: Session = Depends(get_db)
):
    try:
        return TicketTypeService(db).get_availability(ticket_type_id)
    except DomainError as e:
        raise http_error(e)

# Maintenance Endpoints
@router.post("/maintenance/expire", response_model=SweepResult)
def run_expiry_sweep(db: Session = Depends(get_db)):
    """Run one expiry sweep now instead of waiting for the background task"""

    from src.scheduler import run_sweep

    try:
        return run_sweep(db)
    except Exception as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Expiry sweep failed: {str(e)}"
        )
