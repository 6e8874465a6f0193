class SchedulingError(Exception):
    """
    Base for domain failures that are shown to the actor verbatim.
    Routes render them as {"error": message, "code": code, **extra}.
    """
    code = "SCHEDULING_ERROR"
    status = 400
    default_message = "Scheduling request rejected"

    def __init__(self, message=None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self):
        payload = {"error": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class ActiveMeetingExists(SchedulingError):
    code = "ACTIVE_MEETING_EXISTS"
    status = 409
    default_message = "You already have a scheduled meeting. Manage or cancel it before booking another."


class SlotAlreadyTaken(SchedulingError):
    code = "SLOT_ALREADY_TAKEN"
    status = 409
    default_message = "This time slot was just taken. Please pick another one."


class RescheduleLimitExceeded(SchedulingError):
    code = "RESCHEDULE_LIMIT_EXCEEDED"
    status = 403
    default_message = "You have reached the reschedule limit for this meeting."


class CancellationLimitExceeded(SchedulingError):
    code = "CANCELLATION_LIMIT_EXCEEDED"
    status = 403
    default_message = "You have reached the cancellation limit for this month."


class NoOpReschedule(SchedulingError):
    code = "NOOP_RESCHEDULE"
    status = 400
    default_message = "The new date cannot be the same as the current meeting date."


class InvalidSlot(SchedulingError):
    code = "INVALID_SLOT"
    status = 400
    default_message = "Invalid meeting date or time"


class InvalidTransition(SchedulingError):
    code = "INVALID_TRANSITION"
    status = 409
    default_message = "Meeting status does not allow this action"


class AccountBlocked(SchedulingError):
    code = "ACCOUNT_BLOCKED"
    status = 403
    default_message = "This account is blocked. Contact support."


class PermissionDenied(SchedulingError):
    code = "FORBIDDEN"
    status = 403
    default_message = "Forbidden"


class ConcurrentModification(SchedulingError):
    code = "CONCURRENT_MODIFICATION"
    status = 409
    default_message = "Meeting was modified by another request. Reload and try again."


class StorageUnavailable(SchedulingError):
    # infrastructure failure; details go to the log, the actor only sees a retry prompt
    code = "TRY_AGAIN"
    status = 503
    default_message = "Something went wrong. Please try again."
