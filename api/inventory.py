"""
Hospital stock, seeker watchlists and the matching feed that joins them.

Stock writes are read-then-write and clamp at zero. The matching feed fires
one alert per (watchlist entry, changed document) pair on every change event,
so a hospital already holding a watched type is re-announced whenever any
field of its document changes.
"""
import datetime
import logging
import threading

from .states import BLOOD_TYPES, WatchlistStatus
from .store import ADDED, CREATE, MERGE, MODIFIED

logger = logging.getLogger(__name__)

INVENTORY = 'inventory'
WATCHLISTS = 'watchlists'

ACTIVE_FILTER = [('status', '==', 'active')]


def _now():
    return datetime.datetime.now().isoformat()


def create_hospital_inventory(store, hospital_id, data):
    store.write(INVENTORY, {
        'hospitalId': hospital_id,
        'hospitalName': data.get('hospitalName'),
        'licenseId': data.get('licenseId'),
        'address': data.get('address'),
        'phoneNumber': data.get('phoneNumber'),
        'location': data.get('location'),
        'bloodStock': {bt: 0 for bt in BLOOD_TYPES},
        'lastUpdated': _now(),
        'status': 'active',
    }, doc_id=hospital_id, mode=CREATE)
    return hospital_id


def get_inventory(store, hospital_id):
    return store.get(INVENTORY, hospital_id)


def adjust_stock(store, hospital_id, blood_type, change):
    """Apply ``change`` to one blood type. Returns the new count, or None if the hospital is unknown."""
    inventory = store.get(INVENTORY, hospital_id)
    if inventory is None:
        logger.warning("Stock change for unknown hospital %s ignored", hospital_id)
        return None
    current = (inventory.get('bloodStock') or {}).get(blood_type) or 0
    new_amount = max(0, current + int(change))
    store.write(INVENTORY, {
        f'bloodStock.{blood_type}': new_amount,
        'lastUpdated': _now(),
    }, doc_id=hospital_id, mode=MERGE)
    return new_amount


def list_active_inventory(store):
    return store.query(INVENTORY, ACTIVE_FILTER)


def subscribe_all_inventory(store, callback):
    return store.subscribe(INVENTORY, lambda snapshot: callback(snapshot.docs), filters=ACTIVE_FILTER)


def filter_inventory(items, blood_type=None, location=None):
    needle = (location or '').lower()
    result = []
    for item in items:
        has_stock = not blood_type or ((item.get('bloodStock') or {}).get(blood_type) or 0) > 0
        matches_location = (
            not needle
            or needle in (item.get('address') or '').lower()
            or needle in (item.get('hospitalName') or '').lower()
        )
        if has_stock and matches_location:
            result.append(item)
    return result


def add_to_watchlist(store, user_id, blood_type, location=None):
    return store.write(WATCHLISTS, {
        'userId': user_id,
        'bloodType': blood_type,
        'location': location or '',
        'createdAt': _now(),
        'status': WatchlistStatus.ACTIVE.value,
    })


def get_watchlist(store, user_id):
    return store.query(WATCHLISTS, [
        ('userId', '==', user_id),
        ('status', '==', WatchlistStatus.ACTIVE.value),
    ])


def get_all_active_watchlists(store):
    return store.query(WATCHLISTS, [('status', '==', WatchlistStatus.ACTIVE.value)])


def deactivate_watchlist_entry(store, entry_id):
    store.write(WATCHLISTS, {
        'status': WatchlistStatus.CANCELLED.value,
        'updatedAt': _now(),
    }, doc_id=entry_id, mode=MERGE)


def location_text(document):
    """Text a watchlist location filter is matched against."""
    location = document.get('location')
    if isinstance(location, str) and location:
        return location
    return document.get('address') or ''


def watchlist_matches(watchlist, document):
    """Yield every watchlist entry satisfied by one inventory document."""
    stock = document.get('bloodStock') or {}
    where = location_text(document).lower()
    for entry in watchlist:
        if entry.get('status', WatchlistStatus.ACTIVE.value) != WatchlistStatus.ACTIVE.value:
            continue
        blood_type = entry.get('bloodType')
        if (stock.get(blood_type) or 0) <= 0:
            continue
        wanted = (entry.get('location') or '').lower()
        if wanted and wanted not in where:
            continue
        yield entry


def subscribe_matching_inventory(store, watchlist, alerter):
    """Alert ``alerter`` whenever an active inventory satisfies an entry of ``watchlist``."""
    watched_types = {entry.get('bloodType') for entry in watchlist}
    if not watched_types:
        return lambda: None

    def on_snapshot(snapshot):
        for change in snapshot.changes:
            if change.type not in (ADDED, MODIFIED):
                continue
            document = change.doc
            for entry in watchlist_matches(watchlist, document):
                blood_type = entry['bloodType']
                where = location_text(document)
                logger.info("Watchlist %s matched %s at %s", entry.get('id'), blood_type, document.get('id'))
                alerter.notify(
                    'Blood Type Match Found!',
                    f"{blood_type} blood is now available in {where}.",
                    {'inventoryId': document.get('id'), 'bloodType': blood_type},
                )

    return store.subscribe(INVENTORY, on_snapshot, filters=ACTIVE_FILTER)


class SeekerWatch:
    """
    Matching feed for one seeker that follows their live watchlist.

    Every change to the seeker's active entries drops the current inventory
    subscription and opens a new one over the fresh list, so deactivated
    entries stop alerting and new ones start. The new subscription's first
    snapshot re-announces hospitals that already hold a watched type.
    """

    def __init__(self, store, user_id, alerter):
        self.store = store
        self.user_id = user_id
        self.alerter = alerter
        self.watchlist = []
        self._stop_feed = lambda: None
        self._lock = threading.RLock()
        self._stop_watchlist = store.subscribe(WATCHLISTS, self._on_watchlist, filters=[
            ('userId', '==', user_id),
            ('status', '==', WatchlistStatus.ACTIVE.value),
        ])

    def _on_watchlist(self, snapshot):
        with self._lock:
            self._stop_feed()
            self.watchlist = sorted(snapshot.docs, key=lambda entry: entry['id'])
            logger.info("Seeker %s now watching %d entr(ies)", self.user_id, len(self.watchlist))
            self._stop_feed = subscribe_matching_inventory(self.store, self.watchlist, self.alerter)

    def close(self):
        self._stop_watchlist()
        with self._lock:
            self._stop_feed()
            self._stop_feed = lambda: None
            self.watchlist = []


class WatchlistMatcher:
    """Keeps one SeekerWatch per seeker that has active watchlist entries."""

    def __init__(self, store, alerter_factory, user_ids=None):
        self.store = store
        self.alerter_factory = alerter_factory
        self.user_ids = set(user_ids or ())
        self.watches = {}
        self._stop = None
        self._lock = threading.RLock()

    def start(self):
        self._stop = self.store.subscribe(WATCHLISTS, self._on_watchlists, filters=ACTIVE_FILTER)
        return self

    def _on_watchlists(self, snapshot):
        seekers = {entry.get('userId') for entry in snapshot.docs if entry.get('userId')}
        if self.user_ids:
            seekers &= self.user_ids
        with self._lock:
            for seeker_id in sorted(seekers - set(self.watches)):
                self.watches[seeker_id] = SeekerWatch(self.store, seeker_id, self.alerter_factory(seeker_id))
            for seeker_id in sorted(set(self.watches) - seekers):
                self.watches.pop(seeker_id).close()
                logger.info("Seeker %s has no active watchlist entries left", seeker_id)

    def close(self):
        if self._stop is not None:
            self._stop()
            self._stop = None
        with self._lock:
            closed = len(self.watches)
            for watch in self.watches.values():
                watch.close()
            self.watches = {}
        return closed
