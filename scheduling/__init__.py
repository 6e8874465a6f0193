"""Meeting scheduling core: slot calendar, availability, conflict guard, quotas and lifecycle."""
from .errors import (
    SchedulingError,
    ActiveMeetingExists,
    SlotAlreadyTaken,
    RescheduleLimitExceeded,
    CancellationLimitExceeded,
    NoOpReschedule,
    InvalidSlot,
    InvalidTransition,
    PermissionDenied,
    AccountBlocked,
    ConcurrentModification,
    StorageUnavailable,
)
