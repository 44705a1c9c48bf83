"""Per-customer chat flow state, persisted with an explicit expiry so it survives restarts."""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete

from . import config
from .db import ConversationState, Database, utcnow
from .logging_config import get_logger
from .models import ConversationStateView

log = get_logger(__name__)


def _view(state: ConversationState) -> ConversationStateView:
    return ConversationStateView(
        customerId=state.customer_id,
        step=state.step,
        data=state.data or {},
        expiresAt=state.expires_at,
    )


class ConversationStore:
    def __init__(self, db: Database, ttl_seconds: int = config.CONVERSATION_TTL_SECONDS):
        self.db = db
        self.ttl_seconds = ttl_seconds

    async def get(self, customer_id: str, now: Optional[datetime] = None) -> Optional[ConversationStateView]:
        """Current state, or None when absent or expired (expired rows are deleted on read)."""
        now = now or utcnow()
        async with self.db.transaction() as session:
            state = await session.get(ConversationState, customer_id)
            if state is None:
                return None
            if state.expires_at <= now:
                await session.delete(state)
                return None
            return _view(state)

    async def set(
        self,
        customer_id: str,
        step: str,
        data: Optional[dict] = None,
        ttl_seconds: Optional[int] = None,
    ) -> ConversationStateView:
        expires_at = utcnow() + timedelta(seconds=ttl_seconds or self.ttl_seconds)
        async with self.db.transaction() as session:
            state = await session.get(ConversationState, customer_id)
            if state is None:
                state = ConversationState(customer_id=customer_id)
                session.add(state)
            state.step = step
            state.data = dict(data or {})
            state.expires_at = expires_at
            await session.flush()
            return _view(state)

    async def clear(self, customer_id: str) -> bool:
        async with self.db.transaction() as session:
            result = await session.execute(
                delete(ConversationState).where(ConversationState.customer_id == customer_id)
            )
            return result.rowcount > 0

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        async with self.db.transaction() as session:
            result = await session.execute(delete(ConversationState).where(ConversationState.expires_at <= now))
        if result.rowcount:
            log.info(f"Purged {result.rowcount} expired conversation states.")
        return result.rowcount
