from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from tripcoin.db.session import get_session_factory
from tripcoin.services.booking_workflow import BookingWorkflow
from tripcoin.services.coin_requests import CoinRequestService
from tripcoin.services.ledger import CoinLedger
from tripcoin.services.notification_service import NotificationService, notification_service
from tripcoin.services.schedules import ScheduleAvailabilityManager
from tripcoin.services.travel_documents import TravelDocumentService


def get_notifier() -> NotificationService:
    return notification_service


def get_schedules(session_factory: async_sessionmaker = Depends(get_session_factory)) -> ScheduleAvailabilityManager:
    return ScheduleAvailabilityManager(session_factory)


def get_ledger(session_factory: async_sessionmaker = Depends(get_session_factory)) -> CoinLedger:
    return CoinLedger(session_factory)


def get_workflow(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    notifier: NotificationService = Depends(get_notifier),
) -> BookingWorkflow:
    return BookingWorkflow(session_factory, notifier=notifier)


def get_coin_requests(session_factory: async_sessionmaker = Depends(get_session_factory)) -> CoinRequestService:
    return CoinRequestService(session_factory)


def get_documents(session_factory: async_sessionmaker = Depends(get_session_factory)) -> TravelDocumentService:
    return TravelDocumentService(session_factory)
