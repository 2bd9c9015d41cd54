"""
Emergency broadcast: one blood request plus one email per donor in a search
result. A failed request write for one donor does not stop the rest; email
outcomes only reach the logs.
"""
import logging
from dataclasses import dataclass, field
from typing import List

from django.conf import settings

from .blood_requests import create_request
from .errors import StoreError
from .notifications import display_name, run_best_effort, send_blood_request_notification

logger = logging.getLogger(__name__)


@dataclass
class BroadcastResult:
    request_ids: List[str] = field(default_factory=list)
    failed_donors: List[str] = field(default_factory=list)

    @property
    def success(self):
        return not self.failed_donors

    def as_dict(self):
        return {
            'success': self.success,
            'requestIds': self.request_ids,
            'failedDonors': self.failed_donors,
            'notifiedCount': len(self.request_ids),
        }


def broadcast_blood_request(store, seeker_id, seeker_name, donors, blood_type=None, location=None,
                            email_sender=send_blood_request_notification):
    result = BroadcastResult()
    for donor in donors:
        donor_type = blood_type or (donor.get('donorProfile') or {}).get('bloodType')
        try:
            request_id = create_request(store, seeker_id, seeker_name, donor['id'],
                                        donor_type, display_name(donor))
        except StoreError as exc:
            logger.warning("Broadcast request to donor %s failed: %s", donor.get('id'), exc)
            result.failed_donors.append(donor.get('id'))
            continue
        result.request_ids.append(request_id)

    if result.failed_donors:
        logger.warning("Broadcast from %s: %d of %d request writes failed",
                       seeker_id, len(result.failed_donors), len(donors))

    run_best_effort(email_sender, donors, {
        'bloodType': blood_type or 'Any',
        'location': location,
        'seekerName': seeker_name,
        'urgency': 'High',
        'link': f"{settings.FRONTEND_URL}/dashboard",
    })
    return result
