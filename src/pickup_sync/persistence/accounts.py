"""Supabase-backed stores for users, pending selections and the audit log."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from supabase import Client

from ..db.supabase import require_supabase_client
from ..models.domain import PendingSelection, User

logger = logging.getLogger(__name__)


def selection_from_row(row: dict[str, Any]) -> PendingSelection:
    return PendingSelection(
        id=str(row["id"]),
        property_id=str(row["property_id"]),
        user_id=str(row["user_id"]),
        service_id=row["service_id"],
        quantity=int(row.get("quantity") or 1),
        use_sticker=bool(row.get("use_sticker")),
    )


class SupabaseSelectionStore:
    def __init__(self, client: Client | None = None) -> None:
        self.client = client or require_supabase_client()

    def claim_pending_selections(self, property_id: str) -> list[PendingSelection]:
        # DELETE ... RETURNING: a concurrent claimer gets an empty list
        response = self.client.table("pending_selections").delete().eq("property_id", property_id).execute()
        return [selection_from_row(row) for row in response.data or []]

    def save_pending_selections(
        self,
        property_id: str,
        user_id: str,
        selections: Sequence[dict[str, Any]],
    ) -> None:
        if not selections:
            return
        rows = [
            {
                "property_id": property_id,
                "user_id": user_id,
                "service_id": selection["serviceId"],
                "quantity": selection.get("quantity", 1),
                "use_sticker": selection.get("useSticker", False),
            }
            for selection in selections
        ]
        self.client.table("pending_selections").insert(rows).execute()
        logger.info(f"Saved {len(rows)} pending selections for property {property_id}")


class SupabaseUserStore:
    def __init__(self, client: Client | None = None) -> None:
        self.client = client or require_supabase_client()

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        response = (
            self.client.table("users")
            .select("id, email, stripe_customer_id")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        if not rows:
            return None
        row = rows[0]
        return User(id=str(row["id"]), billing_customer_id=row.get("stripe_customer_id"), email=row.get("email"))


class SupabaseAuditLog:
    def __init__(self, client: Client | None = None) -> None:
        self.client = client or require_supabase_client()

    def create_audit_log(
        self,
        user_id: Optional[str],
        action: str,
        entity_type: str,
        entity_id: str,
        details: dict[str, Any],
    ) -> None:
        self.client.table("audit_logs").insert(
            {
                "user_id": user_id,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "details": details,
            }
        ).execute()
