"""
Donation appointment booking.

A slot is (venueId, date, timeSlot) and holds at most
``APPOINTMENT_SLOT_CAPACITY`` scheduled appointments. The capacity check is a
read followed by a separate insert, so two concurrent bookings for the last
seat can both succeed.
"""
import datetime
import logging

from django.conf import settings

from .errors import CapacityExceeded, DocumentNotFound
from .geo import sort_by_distance
from .states import APPOINTMENT_TRANSITIONS, AppointmentStatus, VenueType, check_transition
from .store import MERGE

logger = logging.getLogger(__name__)

COLLECTION = 'appointments'

HISTORY_STATUSES = [
    AppointmentStatus.SCHEDULED.value,
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.CANCELLED.value,
]


def _now():
    return datetime.datetime.now().isoformat()


def slot_capacity():
    return int(getattr(settings, 'APPOINTMENT_SLOT_CAPACITY', 2))


def get_appointment(store, appointment_id):
    appointment = store.get(COLLECTION, appointment_id)
    if appointment is None:
        raise DocumentNotFound(COLLECTION, appointment_id)
    return appointment


def transition_appointment(store, appointment_id, target, extra=None):
    appointment = get_appointment(store, appointment_id)
    status = check_transition('appointment', APPOINTMENT_TRANSITIONS, AppointmentStatus,
                              appointment.get('status'), target)
    fields = {'status': status.value}
    fields.update(extra or {})
    store.write(COLLECTION, fields, doc_id=appointment_id, mode=MERGE)
    logger.info("Appointment %s: %s -> %s", appointment_id, appointment.get('status'), status.value)
    appointment.update(fields)
    return appointment


def book_appointment(store, data):
    venue_id = data.get('venueId')
    date = data.get('date')
    time_slot = data.get('timeSlot')
    capacity = slot_capacity()

    booked = store.query(COLLECTION, [
        ('venueId', '==', venue_id),
        ('date', '==', date),
        ('timeSlot', '==', time_slot),
        ('status', '==', AppointmentStatus.SCHEDULED.value),
    ])
    if len(booked) >= capacity:
        logger.info("Slot %s %s %s is full (%d/%d)", venue_id, date, time_slot, len(booked), capacity)
        raise CapacityExceeded(venue_id, date, time_slot, capacity)

    appointment = dict(data)
    appointment.pop('id', None)
    appointment['status'] = AppointmentStatus.SCHEDULED.value
    appointment['createdAt'] = _now()
    appointment_id = store.write(COLLECTION, appointment)
    logger.info("Appointment %s booked for donor %s at %s", appointment_id, data.get('donorId'), venue_id)
    return appointment_id


def cancel_appointment(store, appointment_id):
    return transition_appointment(store, appointment_id, AppointmentStatus.CANCELLED, {'updatedAt': _now()})


def mark_no_show(store, appointment_id):
    return transition_appointment(store, appointment_id, AppointmentStatus.NO_SHOW, {'updatedAt': _now()})


def _by_date_desc(appointments):
    return sorted(appointments, key=lambda a: a.get('date') or '', reverse=True)


def get_donor_appointments(store, donor_id):
    return _by_date_desc(store.query(COLLECTION, [
        ('donorId', '==', donor_id),
        ('status', 'in', HISTORY_STATUSES),
    ]))


def get_venue_appointments(store, venue_id):
    return _by_date_desc(store.query(COLLECTION, [('venueId', '==', venue_id)]))


def list_venues(store, origin=None):
    """Active hospitals and upcoming camps as one bookable venue list."""
    hospitals = [
        {
            'id': doc['id'],
            'type': VenueType.HOSPITAL.value,
            'name': doc.get('hospitalName'),
            'address': doc.get('address'),
            'location': doc.get('location'),
        }
        for doc in store.query('inventory', [('status', '==', 'active')])
    ]
    camps = [
        {
            'id': doc['id'],
            'type': VenueType.CAMP.value,
            'name': doc.get('campName') or doc.get('organizerName'),
            'address': doc.get('address') or doc.get('location'),
            'location': doc.get('coordinates'),
        }
        for doc in store.query('donationCamps', [('status', '==', 'upcoming')])
    ]
    venues = hospitals + camps
    if origin:
        venues = sort_by_distance(venues, origin)
    return venues
