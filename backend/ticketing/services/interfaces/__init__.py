"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .admission import AdmissionStrategy
from .optimistic_admission import OptimisticAdmission
from .pessimistic_admission import PessimisticAdmission

__all__ = ['AdmissionStrategy', 'OptimisticAdmission', 'PessimisticAdmission']
