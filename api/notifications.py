"""
Best-effort side channels: email, push and in-app alerts.

Nothing in here raises into the caller. Each send returns ``Delivery``
outcomes that the caller may log or inspect, but data writes never wait on
them for correctness.
"""
import datetime
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from django.conf import settings
from django.core.mail import send_mail
from django.template import Context, Template
from django.template.loader import render_to_string
from firebase_admin import messaging
from firebase_admin.exceptions import FirebaseError

from .errors import NotificationDeliveryError, StoreError
from .firebase_config import firebase_ready
from .store import MERGE

logger = logging.getLogger(__name__)


@dataclass
class Delivery:
    recipient: str
    ok: bool
    error: Optional[NotificationDeliveryError] = None


def _failed(recipient, reason):
    return Delivery(recipient=recipient, ok=False, error=NotificationDeliveryError(reason))


def run_best_effort(fn, *args, **kwargs):
    """Run ``fn`` off the request path. Failures are logged, never raised."""
    name = getattr(fn, '__name__', repr(fn))

    def _guarded():
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.exception("Best-effort task %s failed", name)

    if getattr(settings, 'NOTIFICATIONS_RUN_INLINE', False):
        _guarded()
        return None

    thread = threading.Thread(target=_guarded, name=f"best-effort-{name}", daemon=True)
    thread.start()
    return thread


class EmailDispatcher:
    """Sends templated mail, one outcome per recipient."""

    def __init__(self, templates=None, from_email=None, sender=send_mail):
        self.templates = templates if templates is not None else settings.EMAIL_TEMPLATES
        self.from_email = from_email or settings.DEFAULT_FROM_EMAIL
        self.sender = sender

    def send(self, template_id, recipient_params) -> List[Delivery]:
        template = self.templates.get(template_id)
        deliveries = []
        for params in recipient_params:
            to_email = params.get('to_email')
            if not to_email:
                continue
            if template is None:
                deliveries.append(_failed(to_email, "unknown email template"))
                logger.error("No email template registered for the configured id")
                continue
            try:
                subject = Template(template['subject']).render(Context(params, autoescape=False)).strip()
                body = render_to_string(template['template'], params)
                self.sender(
                    subject=subject,
                    message=body,
                    from_email=self.from_email,
                    recipient_list=[to_email],
                    fail_silently=False,
                )
            except Exception as exc:
                logger.error("Email to %s failed: %s", to_email, exc)
                deliveries.append(_failed(to_email, str(exc)))
                continue
            deliveries.append(Delivery(recipient=to_email, ok=True))
        return deliveries


def send_push_multicast(tokens, title, body, data=None) -> List[Delivery]:
    tokens = [t for t in tokens or [] if t]
    if not tokens:
        return []
    if not firebase_ready():
        logger.warning("Push skipped for %d device(s): Firebase is not initialized", len(tokens))
        return [_failed(t, "push disabled") for t in tokens]

    message = messaging.MulticastMessage(
        notification=messaging.Notification(title=title, body=body),
        data={k: str(v) for k, v in (data or {}).items()},
        tokens=tokens,
    )
    try:
        response = messaging.send_each_for_multicast(message)
    except (FirebaseError, ValueError) as exc:
        logger.error("FCM multicast failed: %s", exc)
        return [_failed(t, str(exc)) for t in tokens]

    deliveries = []
    for token, result in zip(tokens, response.responses):
        if result.success:
            deliveries.append(Delivery(recipient=token, ok=True))
        else:
            deliveries.append(_failed(token, str(result.exception)))
    logger.info("FCM multicast: %s/%s sent", response.success_count, len(tokens))
    return deliveries


def display_name(user):
    name = (user or {}).get('name')
    if name:
        return name
    email = (user or {}).get('email') or ''
    return email.split('@')[0] or 'Anonymous'


def send_blood_request_notification(donors, details, dispatcher=None) -> List[Delivery]:
    """Email every donor in ``donors`` about a seeker's request."""
    if not donors:
        return []
    dispatcher = dispatcher or EmailDispatcher()
    blood_type = details.get('bloodType') or 'Any'
    params = [
        {
            'to_email': donor.get('email'),
            'to_name': donor.get('name') or 'Hero',
            'blood_type': blood_type,
            'urgency': details.get('urgency') or 'High',
            'seeker_name': details.get('seekerName'),
            'location': details.get('location') or 'Unknown Location',
            'action_link': details.get('link') or f"{settings.FRONTEND_URL}/dashboard",
            'message': f"A seeker needs {blood_type} blood immediately.",
        }
        for donor in donors
    ]
    logger.info("Sending blood request emails to %d donor(s)", len(params))
    deliveries = dispatcher.send(settings.EMAIL_REQUEST_TEMPLATE_ID, params)
    failed = [d for d in deliveries if not d.ok]
    for delivery in failed:
        logger.warning("Blood request email to %s failed: %s", delivery.recipient, delivery.error)
    if failed:
        logger.warning("Blood request emails: %d of %d failed", len(failed), len(deliveries))
    return deliveries


def notify_request_accepted(store, seeker_id, donor_details, dispatcher=None) -> Optional[Delivery]:
    """Tell the seeker a donor accepted. Returns None when there is nobody to email."""
    try:
        seeker = store.get('users', seeker_id)
    except StoreError as exc:
        logger.error("Could not load seeker %s for acceptance email: %s", seeker_id, exc)
        return None
    if not seeker or not seeker.get('email'):
        logger.error("Seeker %s has no profile or email; acceptance email skipped", seeker_id)
        return None

    params = {
        'to_email': seeker['email'],
        'to_name': seeker.get('name') or 'Seeker',
        'donor_name': donor_details.get('name'),
        'donor_phone': donor_details.get('phone') or 'Not shared',
        'blood_type': donor_details.get('bloodType'),
        'next_steps': ('Please contact the donor immediately to coordinate the donation. '
                       'Time is of the essence!'),
        'action_link': f"{settings.FRONTEND_URL}/search",
    }
    dispatcher = dispatcher or EmailDispatcher()
    deliveries = dispatcher.send(settings.EMAIL_ACCEPTANCE_TEMPLATE_ID, [params])
    delivery = deliveries[0] if deliveries else None
    if delivery is not None and not delivery.ok:
        logger.error("Acceptance email to seeker %s failed: %s", seeker_id, delivery.error)
    return delivery


class NotificationPermission(str, Enum):
    DEFAULT = 'default'
    GRANTED = 'granted'
    DENIED = 'denied'


class WatchlistAlerter:
    """
    Delivers watchlist matches to one seeker.

    Permission and push token are read once and cached for the lifetime of
    the alerter. With permission granted the alert goes out as a push;
    otherwise (or when the push fails) a blocking in-app alert is recorded.
    """

    def __init__(self, store, user_id, push=send_push_multicast):
        self.store = store
        self.user_id = user_id
        self.push = push
        self._permission = None
        self._token = None

    def _load(self):
        user = self.store.get('users', self.user_id) or {}
        try:
            self._permission = NotificationPermission(user.get('notificationPermission') or 'default')
        except ValueError:
            self._permission = NotificationPermission.DEFAULT
        self._token = user.get('fcmToken') or None

    @property
    def permission(self):
        if self._permission is None:
            self._load()
        return self._permission

    def request_permission(self, answer):
        permission = NotificationPermission(answer)
        self.store.write('users', {'notificationPermission': permission.value},
                         doc_id=self.user_id, mode=MERGE)
        self._permission = permission
        return permission

    def notify(self, title, body, data=None) -> Delivery:
        if self.permission is NotificationPermission.GRANTED and self._token:
            deliveries = self.push([self._token], title, body, data)
            if deliveries and deliveries[0].ok:
                return deliveries[0]
            logger.warning("Push to seeker %s failed; falling back to in-app alert", self.user_id)
        return self.alert(title, body)

    def alert(self, title, body) -> Delivery:
        try:
            self.store.write('notifications', {
                'userId': self.user_id,
                'title': title,
                'message': body,
                'type': 'WATCHLIST_MATCH',
                'blocking': True,
                'status': 'UNREAD',
                'timestamp': datetime.datetime.now().isoformat(),
            })
        except StoreError as exc:
            logger.error("Could not record alert for %s: %s", self.user_id, exc)
            return _failed(self.user_id, str(exc))
        return Delivery(recipient=self.user_id, ok=True)
