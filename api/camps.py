import datetime
import logging

from .errors import StoreError
from .store import MERGE

logger = logging.getLogger(__name__)

COLLECTION = 'donationCamps'

ARCHIVE_AFTER_DAYS = 2


def _today():
    return datetime.date.today().isoformat()


def add_donation_camp(store, organizer_id, data):
    camp = dict(data)
    camp.update({
        'organizerId': organizer_id,
        'createdAt': datetime.datetime.now().isoformat(),
        'status': 'upcoming',
    })
    camp_id = store.write(COLLECTION, camp)
    logger.info("Camp %s added by organizer %s for %s", camp_id, organizer_id, camp.get('date'))
    return camp_id


def get_donation_camps(store):
    return store.query(COLLECTION)


def split_camps(camps, today=None):
    """Return (upcoming nearest-first, past newest-first), leaving archived camps out."""
    today = today or _today()
    visible = [c for c in camps if c.get('status') != 'archived']
    upcoming = sorted((c for c in visible if (c.get('date') or '') >= today),
                      key=lambda c: c.get('date') or '')
    past = sorted((c for c in visible if (c.get('date') or '') < today),
                  key=lambda c: c.get('date') or '', reverse=True)
    return upcoming, past


def archive_old_camps(store, today=None):
    """Archive camps dated more than two days ago. Housekeeping; never raises."""
    today = datetime.date.fromisoformat(today) if today else datetime.date.today()
    cutoff = (today - datetime.timedelta(days=ARCHIVE_AFTER_DAYS)).isoformat()
    try:
        old = store.query(COLLECTION, [('date', '<', cutoff)])
        for camp in old:
            store.write(COLLECTION, {'status': 'archived'}, doc_id=camp['id'], mode=MERGE)
    except StoreError as exc:
        logger.error("Archiving old camps failed: %s", exc)
        return 0
    return len(old)
