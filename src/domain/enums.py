"""Domain enumerations and state-transition tables.

Each lifecycle is a closed set of states plus a table keyed by
``(current_state, event)``.  A missing key means the event is illegal in
that state.
"""

import enum


class RideStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    FULL = "full"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RideEvent(str, enum.Enum):
    PUBLISH = "publish"
    FILL = "fill"
    REOPEN = "reopen"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"


RIDE_TRANSITIONS: dict[tuple[RideStatus, RideEvent], RideStatus] = {
    (RideStatus.DRAFT, RideEvent.PUBLISH): RideStatus.ACTIVE,
    (RideStatus.DRAFT, RideEvent.CANCEL): RideStatus.CANCELLED,
    (RideStatus.ACTIVE, RideEvent.FILL): RideStatus.FULL,
    (RideStatus.ACTIVE, RideEvent.START): RideStatus.IN_PROGRESS,
    (RideStatus.ACTIVE, RideEvent.CANCEL): RideStatus.CANCELLED,
    (RideStatus.FULL, RideEvent.REOPEN): RideStatus.ACTIVE,
    (RideStatus.FULL, RideEvent.START): RideStatus.IN_PROGRESS,
    (RideStatus.FULL, RideEvent.CANCEL): RideStatus.CANCELLED,
    (RideStatus.IN_PROGRESS, RideEvent.COMPLETE): RideStatus.COMPLETED,
}


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class BookingEvent(str, enum.Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    BOARD = "board"
    COMPLETE = "complete"
    NO_SHOW = "no-show"


BOOKING_TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (BookingStatus.PENDING, BookingEvent.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.BOARD): BookingStatus.IN_PROGRESS,
    (BookingStatus.CONFIRMED, BookingEvent.NO_SHOW): BookingStatus.NO_SHOW,
    (BookingStatus.IN_PROGRESS, BookingEvent.COMPLETE): BookingStatus.COMPLETED,
}

# Statuses during which a booking holds seats on its ride
ACTIVE_BOOKING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
)


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    WALLET = "wallet"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# Payment moves independently of the booking; REFUNDED is only set by cancel
PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.PROCESSING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PROCESSING, PaymentStatus.PENDING},
    PaymentStatus.COMPLETED: set(),
    PaymentStatus.REFUNDED: set(),
}


class Actor(str, enum.Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"
    SYSTEM = "system"


class Weekday(str, enum.Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def day_number(self) -> int:
        """Monday == 0, matching ``date.weekday()``."""
        return list(Weekday).index(self)
