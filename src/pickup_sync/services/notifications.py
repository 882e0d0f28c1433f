"""Customer notifications for approval outcomes."""

from __future__ import annotations

import logging
from typing import Protocol

from ..db.supabase import require_supabase_client

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send_service_update(self, user_id: str, subject: str, body: str) -> None: ...


def approval_message(address: str, pickup_day: str | None = None) -> tuple[str, str]:
    body = (
        f"Great news! Your address at {address} has been approved. "
        "Your waste collection service is now being set up and you will be billed "
        "according to your selected plan."
    )
    if pickup_day:
        body += f" Your pickup day is {pickup_day.capitalize()}."
    return "Address Approved", body


class SupabaseNotifier:
    """Queues in-app notifications; delivery channels pick them up from the table."""

    def __init__(self, client=None) -> None:
        self.client = client or require_supabase_client()

    def send_service_update(self, user_id: str, subject: str, body: str) -> None:
        self.client.table("notifications").insert(
            {
                "user_id": user_id,
                "type": "service_update",
                "title": subject,
                "message": body,
            }
        ).execute()
        logger.info(f"Queued service update '{subject}' for user {user_id}")
