from repairbid.db.models.booking import Booking
from repairbid.db.models.offer import Offer
from repairbid.db.models.payout import PayoutReport
from repairbid.db.models.request import RepairRequest
from repairbid.db.models.workshop import Workshop

__all__ = [
    "Booking",
    "Offer",
    "PayoutReport",
    "RepairRequest",
    "Workshop",
]
