from typing import List

from prometheus_client import Counter, Gauge, Histogram

from tripcoin.redis_client import redis_client

# Seat inventory
SEAT_OPERATIONS = Counter("tripcoin_seat_operations_total", "Seat counter operations", ["operation", "result"])
SEAT_OPERATION_LATENCY = Histogram("tripcoin_seat_operation_latency_seconds", "Latency of conditional seat updates")

# Ledger
LEDGER_ENTRIES = Counter("tripcoin_ledger_entries_total", "Ledger entries appended", ["entry_type", "reason"])
LEDGER_REJECTIONS = Counter("tripcoin_ledger_rejections_total", "Debits refused for insufficient balance")

# Booking workflow
BOOKING_TRANSITIONS = Counter("tripcoin_booking_transitions_total", "Booking state transitions", ["entity", "status"])
SCHEDULE_CONFLICTS = Counter("tripcoin_schedule_conflicts_total", "Trips refused for overlapping resources", ["resource"])

# Notifications
NOTIF_SENT = Counter("tripcoin_notifications_sent_total", "Notifications handed to a sink", ["sink"])
NOTIF_FAILED = Counter("tripcoin_notifications_failed_total", "Notification delivery failures", ["sink"])
NOTIF_RETRIED = Counter("tripcoin_notifications_retried_total", "Notification delivery retries")
NOTIF_DLQ_DEPTH = Gauge("tripcoin_notification_dlq_depth", "Redis DLQ list length for notifications")


async def update_queue_depth(keys: List[str] = None):
    """Update queue depth gauges by measuring Redis list lengths for configured keys."""
    from tripcoin.config import settings

    keys = keys or [settings.NOTIFICATION_DLQ_KEY]
    depth = 0
    for key in keys:
        depth += await redis_client.llen(key)
    NOTIF_DLQ_DEPTH.set(depth)
