import logging

from app.store import RecordStore

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown User"


class UserDirectory:
    """Read-only user lookups used to attribute reservations."""

    def __init__(self, store: RecordStore):
        self.store = store

    def get_user_by_id(self, user_id: str):
        return self.store.get("users", user_id)

    def display_name(self, user_id: str) -> str:
        user = self.get_user_by_id(user_id)
        return user.name if user is not None else UNKNOWN_USER
