import enum


class RequestStatus(str, enum.Enum):
    NEW = "NEW"
    IN_BIDDING = "IN_BIDDING"
    BIDDING_CLOSED = "BIDDING_CLOSED"
    BOOKED = "BOOKED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OfferStatus(str, enum.Enum):
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


class BookingStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    RESCHEDULED = "RESCHEDULED"
    DONE = "DONE"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class OfferSortKey(str, enum.Enum):
    PRICE = "price"
    DISTANCE = "distance"
    RATING = "rating"
