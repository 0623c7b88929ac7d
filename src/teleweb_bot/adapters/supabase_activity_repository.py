"""Supabase repository for bot activity events."""

from dataclasses import dataclass

from supabase import Client

from teleweb_bot.services.audit import ActivityEvent, ActivityRepository


@dataclass
class SupabaseActivityRepository(ActivityRepository):
    """Supabase-backed activity repository."""

    client: Client

    def create_activity(self, event: ActivityEvent) -> None:
        """Insert an activity row."""
        self.client.table("bot_activities").insert(
            {
                "user_id": str(event.user_id) if event.user_id else None,
                "telegram_user_id": event.telegram_user_id,
                "action": event.action,
                "mode": event.mode,
                "success": event.success,
                "details": event.details,
                "error_message": event.error_message,
                "created_at": event.occurred_at.isoformat(),
            }
        ).execute()
