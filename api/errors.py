"""Error taxonomy shared by the services and the HTTP views."""


class BloodLinkError(Exception):
    """Base class for every error raised by the domain services."""


class StoreError(BloodLinkError):
    """A read or write against the document store failed."""


class DocumentNotFound(StoreError):
    """An operation needed a document that does not exist."""

    def __init__(self, collection, doc_id):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} not found")


class InvalidTransition(BloodLinkError):
    """A status change that the transition table does not allow."""

    def __init__(self, kind, current, target):
        self.kind = kind
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {kind} from '{current}' to '{target}'")


class CapacityExceeded(BloodLinkError):
    """The appointment slot already holds the maximum number of bookings."""

    def __init__(self, venue_id, date, time_slot, capacity):
        self.venue_id = venue_id
        self.date = date
        self.time_slot = time_slot
        self.capacity = capacity
        super().__init__("This time slot is fully booked. Please choose another.")


class NotificationDeliveryError(BloodLinkError):
    """An email or push could not be delivered. Never raised out of best-effort paths."""
