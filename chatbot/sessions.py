"""In-process chat sessions for the HTTP endpoints."""
import logging
import threading
import uuid

from django.conf import settings

from api.db import get_db

from .intake import IntakeSession

logger = logging.getLogger(__name__)


class TimerScheduler:
    """Runs delayed chat work on daemon timer threads."""

    def __init__(self):
        self._timers = set()
        self._lock = threading.Lock()

    def call_later(self, delay_ms, fn, *args):
        def _run():
            with self._lock:
                self._timers.discard(timer)
            try:
                fn(*args)
            except Exception:
                logger.exception("Delayed chat task failed")

        timer = threading.Timer(delay_ms / 1000.0, _run)
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()
        return timer

    def cancel_all(self):
        with self._lock:
            timers, self._timers = self._timers, set()
        for timer in timers:
            timer.cancel()


class PendingNavigation:
    """Holds the route a session asked the client to open until the client fetches it."""

    def __init__(self):
        self.path = None
        self._lock = threading.Lock()

    def __call__(self, path):
        with self._lock:
            self.path = path

    def pop(self):
        with self._lock:
            path, self.path = self.path, None
        return path


class Conversation:
    def __init__(self, conversation_id, session, navigation, scheduler):
        self.id = conversation_id
        self.session = session
        self.navigation = navigation
        self.scheduler = scheduler

    def as_dict(self):
        return {
            'conversation_id': self.id,
            'state': self.session.state.value,
            'messages': [m.as_dict() for m in self.session.transcript],
            'navigate_to': self.navigation.pop(),
        }


class SessionRegistry:
    def __init__(self, store_factory):
        self.store_factory = store_factory
        self._conversations = {}
        self._lock = threading.Lock()

    def start(self):
        scheduler = TimerScheduler()
        navigation = PendingNavigation()
        session = IntakeSession(
            self.store_factory(),
            scheduler,
            navigation,
            reply_delay_ms=settings.CHATBOT_REPLY_DELAY_MS,
            navigation_delay_ms=settings.CHATBOT_NAVIGATION_DELAY_MS,
        )
        conversation = Conversation(uuid.uuid4().hex, session, navigation, scheduler)
        with self._lock:
            self._conversations[conversation.id] = conversation
        logger.info("Chat conversation %s started", conversation.id)
        return conversation

    def get(self, conversation_id):
        with self._lock:
            return self._conversations.get(conversation_id)

    def close(self, conversation_id):
        with self._lock:
            conversation = self._conversations.pop(conversation_id, None)
        if conversation is None:
            return False
        conversation.scheduler.cancel_all()
        logger.info("Chat conversation %s closed", conversation_id)
        return True


_registry = None
_registry_lock = threading.Lock()


def get_registry():
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = SessionRegistry(get_db)
        return _registry
