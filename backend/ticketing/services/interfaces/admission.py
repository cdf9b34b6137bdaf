"""
Admission control strategy interface.
Allows swapping between different concurrency control approaches.
"""

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.models.event import Event


class AdmissionStrategy(ABC):
    """
    Interface for per-event serialization of admission decisions.

    Every write that depends on an event's aggregate state (booking commit,
    capacity change, delete) runs as: load_event -> read aggregate ->
    check -> claim -> write -> commit, inside one transaction. `claim`
    returning False means another writer committed for the same event
    since `load_event`; the caller rolls back and re-runs the sequence.

    Implementations:
    - OptimisticAdmission: version compare-and-swap on the event row
    - PessimisticAdmission: SELECT ... FOR UPDATE on the event row
    """

    name: str

    @abstractmethod
    async def load_event(self, db: AsyncSession, event_id: int) -> Optional[Event]:
        """
        Read the event row for the critical section.

        Args:
            db: Session whose transaction spans the whole attempt
            event_id: Event to load

        Returns:
            Fresh Event (never a stale identity-map copy), or None
        """
        pass

    @abstractmethod
    async def claim(self, db: AsyncSession, event: Event) -> bool:
        """
        Claim the event for this transaction and bump its version.

        Args:
            db: Same session used by load_event
            event: Event returned by load_event

        Returns:
            True if the claim holds until commit
            False if the event changed since it was read
        """
        pass
