import datetime
import logging

from .errors import DocumentNotFound
from .store import CREATE, MERGE

logger = logging.getLogger(__name__)

COLLECTION = 'users'


def create_user_profile(store, uid, data):
    profile = dict(data)
    profile.setdefault('role', 'seeker')
    profile['createdAt'] = datetime.datetime.now().isoformat()
    profile['isDonor'] = False
    store.write(COLLECTION, profile, doc_id=uid, mode=CREATE)
    return uid


def get_user_profile(store, uid):
    return store.get(COLLECTION, uid)


def require_user(store, uid):
    user = store.get(COLLECTION, uid)
    if user is None:
        raise DocumentNotFound(COLLECTION, uid)
    return user


def register_donor(store, uid, blood_type, phone, city):
    store.write(COLLECTION, {
        'isDonor': True,
        'donorProfile': {
            'bloodType': blood_type,
            'phone': phone,
            'city': city,
            'lastDonation': None,
            'totalDonations': 0,
            'donationHistory': [],
        },
    }, doc_id=uid, mode=MERGE)
    logger.info("User %s registered as %s donor", uid, blood_type)


def update_donor_eligibility(store, uid, is_eligible):
    store.write(COLLECTION, {
        'isEligible': bool(is_eligible),
        'lastChecked': datetime.datetime.now().isoformat(),
    }, doc_id=uid, mode=MERGE)


def save_fcm_token(store, uid, token):
    store.write(COLLECTION, {'fcmToken': token}, doc_id=uid, mode=MERGE)


def search_donors(store, blood_type=None, location=None):
    """Donors of ``blood_type`` whose city contains ``location`` (case-insensitive)."""
    filters = [('isDonor', '==', True)]
    if blood_type:
        filters.append(('donorProfile.bloodType', '==', blood_type))

    needle = (location or '').lower()
    results = []
    for user in store.query(COLLECTION, filters):
        city = (user.get('donorProfile') or {}).get('city') or ''
        if not needle or needle in city.lower():
            user['type'] = 'donor'
            results.append(user)
    return results


def find_emergency_donors(store, blood_type, city):
    """Exact-match lookup used by the emergency intake."""
    return store.query(COLLECTION, [
        ('isDonor', '==', True),
        ('isEligible', '==', True),
        ('donorProfile.bloodType', '==', blood_type),
        ('donorProfile.city', '==', city),
    ])
