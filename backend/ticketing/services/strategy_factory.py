"""
Admission strategy factory.
Configures which admission control strategy to use.
"""

from typing import Optional

from ticketing.services.interfaces.admission import AdmissionStrategy
from ticketing.services.interfaces.optimistic_admission import OptimisticAdmission
from ticketing.services.interfaces.pessimistic_admission import PessimisticAdmission
from ticketing.core.config import settings


def get_admission_strategy(name: Optional[str] = None) -> AdmissionStrategy:
    """
    Build an admission strategy.

    Strategy selection:
    - optimistic: version compare-and-swap, retry on conflict (default)
    - pessimistic: row lock on the event, no retries needed

    Defaults to the ADMISSION_STRATEGY setting.
    """
    strategy = (name or settings.ADMISSION_STRATEGY).lower()

    if strategy == 'pessimistic':
        return PessimisticAdmission()
    if strategy == 'optimistic':
        return OptimisticAdmission()
    raise ValueError(f"Unknown admission strategy: {strategy}")


# Singleton instance
_strategy: Optional[AdmissionStrategy] = None

def get_admission() -> AdmissionStrategy:
    """Get admission strategy singleton."""
    global _strategy
    if _strategy is None:
        _strategy = get_admission_strategy()
    return _strategy
