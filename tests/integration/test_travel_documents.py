import pytest

from tripcoin.errors import InsufficientBalance, InvalidState, PermissionDenied
from tripcoin.models.models import DocumentStatus, EntryReason, TravelDocument, TripStatus
from tripcoin.services.travel_documents import TravelDocumentService


@pytest.fixture
def documents(session_factory, ledger):
    return TravelDocumentService(session_factory, ledger=ledger, coin_cost=10000)


async def test_issue_debits_fixed_cost(documents, make_trip, actors, fund, ledger, world):
    trip_id = await make_trip()
    await fund(world["admin_account"], 25000)
    doc = await documents.create(trip_id, actors["admin"])
    assert doc.status == DocumentStatus.DRAFT
    assert doc.document_number.startswith("SJ-")

    issued = await documents.issue(doc.id, actors["admin"])

    assert issued.status == DocumentStatus.ISSUED
    assert issued.coin_cost == 10000
    assert issued.issued_at is not None
    assert await ledger.get_balance(world["admin_account"]) == 15000
    entry = (await ledger.list_entries(world["admin_account"]))[0]
    assert entry.reason == EntryReason.TRAVEL_DOCUMENT
    assert entry.reference_id == doc.document_number


async def test_issue_without_coins_stays_draft(documents, make_trip, actors, load):
    trip_id = await make_trip()
    doc = await documents.create(trip_id, actors["admin"])
    with pytest.raises(InsufficientBalance):
        await documents.issue(doc.id, actors["admin"])
    assert (await load(TravelDocument, doc.id)).status == DocumentStatus.DRAFT


async def test_issued_documents_are_final(documents, make_trip, actors, fund, world):
    trip_id = await make_trip()
    await fund(world["admin_account"], 10000)
    doc = await documents.create(trip_id, actors["admin"])
    await documents.issue(doc.id, actors["admin"])

    with pytest.raises(InvalidState):
        await documents.issue(doc.id, actors["admin"])
    with pytest.raises(InvalidState):
        await documents.cancel(doc.id, actors["admin"])
    with pytest.raises(InvalidState):
        await documents.remove(doc.id, actors["admin"])


async def test_cancel_and_remove_draft(documents, make_trip, actors, load):
    trip_id = await make_trip()
    doc = await documents.create(trip_id, actors["admin"])
    cancelled = await documents.cancel(doc.id, actors["admin"])
    assert cancelled.status == DocumentStatus.CANCELLED
    await documents.remove(doc.id, actors["super_admin"])
    assert await load(TravelDocument, doc.id) is None


async def test_only_creator_or_super_admin(documents, make_trip, actors):
    trip_id = await make_trip()
    doc = await documents.create(trip_id, actors["admin"])
    with pytest.raises(PermissionDenied):
        await documents.issue(doc.id, actors["other_admin"])
    with pytest.raises(PermissionDenied):
        await documents.create(trip_id, actors["customer"])


async def test_trip_must_be_running(documents, make_trip, actors):
    trip_id = await make_trip(status=TripStatus.CANCELLED)
    with pytest.raises(InvalidState):
        await documents.create(trip_id, actors["admin"])
