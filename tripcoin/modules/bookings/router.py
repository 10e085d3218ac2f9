from fastapi import APIRouter, Depends, status

from tripcoin.auth.deps import admin_required, get_current_actor
from tripcoin.modules.deps import get_workflow
from tripcoin.schemas.booking import (
    BookingRequestResponse,
    CancelTicketRequest,
    DirectBookingRequest,
    RejectRequest,
    SubmitRequest,
    TicketResponse,
)
from tripcoin.services.actors import Actor
from tripcoin.services.booking_workflow import BookingWorkflow, PassengerData

router = APIRouter()


def _passengers(req):
    return [PassengerData(**p.model_dump()) for p in req.passengers]


@router.post("/requests", response_model=BookingRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    req: SubmitRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    """Submit a payment proof for review; no seats are held until approval."""
    return await workflow.submit(
        req.trip_id,
        _passengers(req),
        actor,
        proof_url=req.proof_url,
        booker_phone=req.booker_phone,
        pickup_address=req.pickup_address,
        dropoff_address=req.dropoff_address,
        notes=req.notes,
    )


@router.get("/requests/{request_id}", response_model=BookingRequestResponse)
async def get_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    return await workflow.get_request(request_id, actor)


@router.post("/requests/{request_id}/approve", response_model=TicketResponse)
async def approve_request(
    request_id: int,
    actor: Actor = Depends(admin_required),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    return await workflow.approve(request_id, actor)


@router.post("/requests/{request_id}/reject", response_model=BookingRequestResponse)
async def reject_request(
    request_id: int,
    req: RejectRequest,
    actor: Actor = Depends(admin_required),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    return await workflow.reject(request_id, actor, req.reason)


@router.delete("/requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    await workflow.remove_request(request_id, actor)


@router.post("/tickets", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def book_direct(
    req: DirectBookingRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    """Admins get a confirmed, coin-funded ticket; customers get one pending payment."""
    return await workflow.book_direct(
        req.trip_id,
        _passengers(req),
        actor,
        customer_id=req.customer_id,
        booker_phone=req.booker_phone,
        pickup_address=req.pickup_address,
        dropoff_address=req.dropoff_address,
        notes=req.notes,
    )


@router.get("/tickets/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    return await workflow.get_ticket(ticket_id, actor)


@router.post("/tickets/{ticket_id}/confirm", response_model=TicketResponse)
async def confirm_ticket(
    ticket_id: int,
    actor: Actor = Depends(admin_required),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    return await workflow.confirm(ticket_id, actor)


@router.post("/tickets/{ticket_id}/cancel", response_model=TicketResponse)
async def cancel_ticket(
    ticket_id: int,
    req: CancelTicketRequest = None,
    actor: Actor = Depends(get_current_actor),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    return await workflow.cancel(ticket_id, actor, reason=req.reason if req else None)


@router.delete("/tickets/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_ticket(
    ticket_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    await workflow.remove_ticket(ticket_id, actor)
