from fastapi import APIRouter, Depends, status

from tripcoin.auth.deps import admin_required
from tripcoin.modules.deps import get_documents
from tripcoin.schemas.ledger import TravelDocumentCreate, TravelDocumentResponse
from tripcoin.services.actors import Actor
from tripcoin.services.travel_documents import TravelDocumentService

router = APIRouter()


@router.post("/", response_model=TravelDocumentResponse, status_code=status.HTTP_201_CREATED)
async def create_document(
    req: TravelDocumentCreate,
    actor: Actor = Depends(admin_required),
    service: TravelDocumentService = Depends(get_documents),
):
    return await service.create(req.trip_id, actor, notes=req.notes)


@router.post("/{document_id}/issue", response_model=TravelDocumentResponse)
async def issue_document(
    document_id: int,
    actor: Actor = Depends(admin_required),
    service: TravelDocumentService = Depends(get_documents),
):
    """Issue the document, charging its coin cost to the creator's ledger."""
    return await service.issue(document_id, actor)


@router.post("/{document_id}/cancel", response_model=TravelDocumentResponse)
async def cancel_document(
    document_id: int,
    actor: Actor = Depends(admin_required),
    service: TravelDocumentService = Depends(get_documents),
):
    return await service.cancel(document_id, actor)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_document(
    document_id: int,
    actor: Actor = Depends(admin_required),
    service: TravelDocumentService = Depends(get_documents),
):
    await service.remove(document_id, actor)
