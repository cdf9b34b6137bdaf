"""
Optimistic admission strategy - version compare-and-swap.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.models.event import Event
from ticketing.services.interfaces.admission import AdmissionStrategy


class OptimisticAdmission(AdmissionStrategy):
    """
    No locks while reading; the claim is

        UPDATE events SET version = version + 1
        WHERE id = :id AND version = :version_read

    Zero rows updated means someone else committed in between and the
    decision was made on stale state.

    Use when:
    - <100 concurrent users per event
    - Normal load scenarios
    - Throughput preferred over zero retries
    """

    name = "optimistic"

    async def load_event(self, db: AsyncSession, event_id: int) -> Optional[Event]:
        result = await db.execute(
            select(Event)
            .where(Event.id == event_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def claim(self, db: AsyncSession, event: Event) -> bool:
        result = await db.execute(
            update(Event)
            .where(Event.id == event.id, Event.version == event.version)
            .values(version=Event.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
