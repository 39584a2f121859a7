"""
Service interfaces for dependency inversion.
Allows swapping admission gates without changing the booking core.
"""

from .admission import AdmissionStrategy, slot_key
from .local_admission import LocalLockAdmission
from .optimistic_admission import OptimisticAdmission

__all__ = ["AdmissionStrategy", "LocalLockAdmission", "OptimisticAdmission", "slot_key"]
