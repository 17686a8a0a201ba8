'''
Static enums mirroring the database columns, plus the legal status transitions.
'''
import enum


# --- Base Enum Class ---
class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member values."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class UserRole(ListableEnum):
    INSTRUCTOR = "instructor"
    LEARNER = "learner"


class DayOfWeek(ListableEnum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_weekday(cls, weekday: int) -> "DayOfWeek":
        """Maps date.weekday() (0=Mon) to a DayOfWeek."""
        return list(cls)[weekday]


class LessonStatus(ListableEnum):
    PENDING_CONFIRMATION = "pending-confirmation"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class LessonPaymentStatus(ListableEnum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    WAIVED = "waived"


class LessonType(ListableEnum):
    STANDARD = "standard"
    TEST_PREP = "test-prep"
    MOCK_TEST = "mock-test"
    MOTORWAY = "motorway"
    REFRESHER = "refresher"


class PaymentStatus(ListableEnum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentType(ListableEnum):
    TOP_UP = "top-up"
    LESSON_PAYMENT = "lesson-payment"
    PUBLIC_BOOKING = "public-booking"
    LESSON_BOOKING = "lesson-booking"
    PACKAGE_BOOKING = "package-booking"
    CANCELLATION_FEE = "cancellation-fee"
    REFUND = "refund"


class PaymentMethod(ListableEnum):
    CARD = "card"
    BALANCE = "balance"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


class CancelledBy(ListableEnum):
    INSTRUCTOR = "instructor"
    LEARNER = "learner"
    SYSTEM = "system"


class LinkStatus(ListableEnum):
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class LinkEvent(ListableEnum):
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Lessons that reserve their time interval.
OCCUPYING_LESSON_STATUSES = (LessonStatus.SCHEDULED, LessonStatus.COMPLETED)

LESSON_TRANSITIONS: dict[LessonStatus, frozenset[LessonStatus]] = {
    LessonStatus.PENDING_CONFIRMATION: frozenset({LessonStatus.SCHEDULED, LessonStatus.CANCELLED}),
    LessonStatus.SCHEDULED: frozenset({LessonStatus.COMPLETED, LessonStatus.CANCELLED, LessonStatus.NO_SHOW}),
    LessonStatus.COMPLETED: frozenset(),
    LessonStatus.CANCELLED: frozenset(),
    LessonStatus.NO_SHOW: frozenset(),
}

# FAILED -> SUCCEEDED covers a gateway retry on the same intent after a failed attempt.
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.SUCCEEDED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.SUCCEEDED}),
    PaymentStatus.SUCCEEDED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


def can_transition_lesson(current: LessonStatus, target: LessonStatus) -> bool:
    return LessonStatus(target) in LESSON_TRANSITIONS[LessonStatus(current)]


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return PaymentStatus(target) in PAYMENT_TRANSITIONS[PaymentStatus(current)]


def sources_for_payment(target: PaymentStatus) -> list[PaymentStatus]:
    """All statuses that may legally move to `target` (used in conditional UPDATE predicates)."""
    return [source for source, targets in PAYMENT_TRANSITIONS.items() if target in targets]
