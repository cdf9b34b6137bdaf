"""
Pessimistic admission strategy - row lock on the event.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.models.event import Event
from ticketing.services.interfaces.admission import AdmissionStrategy


class PessimisticAdmission(AdmissionStrategy):
    """
    SELECT ... FOR UPDATE on the event row, held until commit.
    Requests for the same event queue on the row lock (bounded by
    lock_timeout); other events are unaffected. The claim cannot be lost.

    Use when:
    - Flash sales on a single event with many seat conflicts
    - Retries are more expensive than waiting
    """

    name = "pessimistic"

    async def load_event(self, db: AsyncSession, event_id: int) -> Optional[Event]:
        result = await db.execute(
            select(Event)
            .where(Event.id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def claim(self, db: AsyncSession, event: Event) -> bool:
        # Version still moves so optimistic readers elsewhere notice the write.
        result = await db.execute(
            update(Event)
            .where(Event.id == event.id)
            .values(version=Event.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
