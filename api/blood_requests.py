"""
Seeker -> donor blood requests.

    pending  -> accepted | rejected | cancelled | closed
    accepted -> cancelled | archived
    rejected -> archived

Store failures propagate; the acceptance email is best-effort.
"""
import datetime
import logging

from .errors import DocumentNotFound, InvalidTransition
from .notifications import notify_request_accepted, run_best_effort
from .states import REQUEST_TRANSITIONS, RequestStatus, check_transition
from .store import MERGE

logger = logging.getLogger(__name__)

COLLECTION = 'blood_requests'

ACTIVE_STATUSES = (RequestStatus.PENDING.value, RequestStatus.ACCEPTED.value)


def _now():
    return datetime.datetime.now().isoformat()


def newest_first(requests):
    return sorted(requests, key=lambda r: r.get('createdAt') or '', reverse=True)


def get_request(store, request_id):
    request = store.get(COLLECTION, request_id)
    if request is None:
        raise DocumentNotFound(COLLECTION, request_id)
    return request


def _transition(store, request_id, target, extra=None):
    request = get_request(store, request_id)
    status = check_transition('blood request', REQUEST_TRANSITIONS, RequestStatus,
                              request.get('status'), target)
    fields = {'status': status.value}
    fields.update(extra or {})
    store.write(COLLECTION, fields, doc_id=request_id, mode=MERGE)
    logger.info("Blood request %s: %s -> %s", request_id, request.get('status'), status.value)
    request.update(fields)
    return request


def create_request(store, seeker_id, seeker_name, donor_id, blood_type, donor_name):
    # No dedup: repeated requests to the same donor are allowed.
    request_id = store.write(COLLECTION, {
        'seekerId': seeker_id,
        'seekerName': seeker_name,
        'donorId': donor_id,
        'donorName': donor_name,
        'bloodType': blood_type,
        'status': RequestStatus.PENDING.value,
        'createdAt': _now(),
    })
    logger.info("Blood request %s created: %s -> %s (%s)", request_id, seeker_id, donor_id, blood_type)
    return request_id


def respond_to_request(store, request_id, status, donor_phone=None, notifier=notify_request_accepted):
    """Donor accepts or rejects a pending request."""
    try:
        target = RequestStatus(status)
    except ValueError:
        target = None
    if target not in (RequestStatus.ACCEPTED, RequestStatus.REJECTED):
        request = get_request(store, request_id)
        raise InvalidTransition('blood request', request.get('status'), getattr(status, 'value', status))

    extra = {'respondedAt': _now()}
    accepted = target is RequestStatus.ACCEPTED
    if accepted and donor_phone:
        extra['donorPhone'] = donor_phone

    request = _transition(store, request_id, target, extra)

    if accepted and notifier is not None:
        run_best_effort(notifier, store, request.get('seekerId'), {
            'name': request.get('donorName'),
            'phone': donor_phone,
            'bloodType': request.get('bloodType'),
        })
    return request


def cancel_request(store, request_id):
    return _transition(store, request_id, RequestStatus.CANCELLED, {'updatedAt': _now()})


def archive_request(store, request_id):
    return _transition(store, request_id, RequestStatus.ARCHIVED, {'updatedAt': _now()})


def mark_all_fulfilled(store, seeker_id):
    """Close every pending request of a seeker who found help elsewhere."""
    pending = store.query(COLLECTION, [
        ('seekerId', '==', seeker_id),
        ('status', '==', RequestStatus.PENDING.value),
    ])
    now = _now()
    for request in pending:
        store.write(COLLECTION, {'status': RequestStatus.CLOSED.value, 'updatedAt': now},
                    doc_id=request['id'], mode=MERGE)
    logger.info("Closed %d pending request(s) for seeker %s", len(pending), seeker_id)
    return len(pending)


def get_donor_inbox(store, donor_id):
    return newest_first(store.query(COLLECTION, [
        ('donorId', '==', donor_id),
        ('status', '==', RequestStatus.PENDING.value),
    ]))


def get_sent_requests(store, seeker_id):
    return newest_first(store.query(COLLECTION, [('seekerId', '==', seeker_id)]))


def subscribe_donor_inbox(store, donor_id, callback):
    return store.subscribe(
        COLLECTION,
        lambda snapshot: callback(newest_first(snapshot.docs)),
        filters=[('donorId', '==', donor_id), ('status', '==', RequestStatus.PENDING.value)],
    )


def subscribe_sent_requests(store, seeker_id, callback):
    return store.subscribe(
        COLLECTION,
        lambda snapshot: callback(newest_first(snapshot.docs)),
        filters=[('seekerId', '==', seeker_id)],
    )


def split_sent_requests(requests):
    """Split a seeker's requests into (active, past) the way the dashboard tabs show them."""
    active = [r for r in requests if r.get('status') in ACTIVE_STATUSES]
    past = [r for r in requests if r.get('status') not in ACTIVE_STATUSES]
    return active, past
