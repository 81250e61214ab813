"""Read access to booking records owned by the booking subsystem."""

from typing import TYPE_CHECKING

from paycore.models import Booking

from .dynamodb import BOOKINGS_TABLE, from_item, to_item

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService


class BookingStore:
    """Loads and stores booking records.

    Payment fields are written only by ``PaymentLedger`` and
    ``ManualPaymentService``.
    """

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def get_booking(self, booking_id: str, consistent: bool = False) -> Booking | None:
        item = self.db.get_item(
            BOOKINGS_TABLE, {"booking_id": booking_id}, consistent_read=consistent
        )
        return from_item(Booking, item) if item else None

    def save_booking(self, booking: Booking) -> None:
        """Store a booking record (used by seeding and tests)."""
        self.db.put_item(BOOKINGS_TABLE, to_item(booking))
