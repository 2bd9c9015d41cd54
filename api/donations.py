"""
Donation completion and certificates.

Completing an appointment applies four effects, each its own store call:
the appointment is closed, hospital stock goes up, the donor profile is
updated and the global donation log gets a record. A failure part-way leaves
the earlier effects in place. Nothing guards against completing the same
appointment twice; every call repeats all four effects.
"""
import datetime
import logging
import random
import string
from dataclasses import dataclass

from .appointments import transition_appointment
from .donors import require_user
from .inventory import adjust_stock
from .states import AppointmentStatus, VenueType
from .store import MERGE

logger = logging.getLogger(__name__)

DONATIONS = 'donations'


def complete_appointment(store, appointment_id, venue_id, blood_type, donor_id, venue_name, venue_type):
    now = datetime.datetime.now().isoformat()

    # 1. Appointment
    transition_appointment(store, appointment_id, AppointmentStatus.COMPLETED, {
        'collectedBloodType': blood_type,
        'completedAt': now,
    })

    # 2. Stock
    if venue_type == VenueType.HOSPITAL.value:
        adjust_stock(store, venue_id, blood_type, 1)

    # 3. Donor profile
    record = {
        'venueId': venue_id,
        'venueName': venue_name,
        'bloodType': blood_type,
        'date': now,
    }
    donor = require_user(store, donor_id)
    profile = donor.get('donorProfile') or {}
    history = list(profile.get('donationHistory') or [])
    history.append(record)
    store.write('users', {
        'donorProfile.lastDonation': now,
        'donorProfile.totalDonations': (profile.get('totalDonations') or 0) + 1,
        'donorProfile.donationHistory': history,
    }, doc_id=donor_id, mode=MERGE)

    # 4. Global log
    store.write(DONATIONS, dict(record, donorId=donor_id, donorName=donor.get('name')))

    logger.info("Appointment %s completed: %s from donor %s at %s",
                appointment_id, blood_type, donor_id, venue_id)
    return record


def donation_history(profile):
    history = (profile or {}).get('donationHistory') or []
    return sorted(history, key=lambda r: r.get('date') or '', reverse=True)


@dataclass(frozen=True)
class Certificate:
    certificate_id: str
    donor_name: str
    venue_name: str
    date: str

    def as_text(self):
        return (
            "CERTIFICATE OF APPRECIATION\n\n"
            f"This certifies that {self.donor_name}\n"
            f"donated blood at {self.venue_name} on {self.date}.\n\n"
            f"Certificate ID: {self.certificate_id}"
        )


def generate_certificate(donor_name, venue_name, date):
    # Pseudo-random, not checked for uniqueness.
    suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=9))
    return Certificate(
        certificate_id=f"CERT-{suffix}",
        donor_name=donor_name,
        venue_name=venue_name,
        date=date,
    )
