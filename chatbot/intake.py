"""
Keyword-driven support chat with an emergency donor lookup.

    NORMAL --panic keyword--> AWAITING_BLOOD_GROUP --any text--> AWAITING_CITY
    AWAITING_CITY --any text--> NORMAL  (donor lookup + navigation to /search)

Classification is case-insensitive substring matching over ordered rules;
the first rule that matches wins.

The user's message and the state change land immediately. The reply is
computed and appended after ``reply_delay_ms``; messages sent during that
window already see the new state. Navigations run ``navigation_delay_ms``
after the reply that triggers them.
"""
import datetime
import itertools
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Tuple

from api.donors import find_emergency_donors
from api.errors import StoreError

logger = logging.getLogger(__name__)


class ChatState(str, Enum):
    NORMAL = 'normal'
    AWAITING_BLOOD_GROUP = 'emergency.awaiting_blood_group'
    AWAITING_CITY = 'emergency.awaiting_city'


PANIC_KEYWORDS = ('urgent', 'emergency', 'need blood', 'map', 'help')

WELCOME = "Hello! How can I help you today?"
PROMPT_BLOOD_GROUP = "🚨 I’m here to help. Please tell me the required blood group."
PROMPT_CITY = "Got it. Please tell me your city or location."
SEARCH_FAILED = "Sorry, I encountered an error while searching. Please try again later."
FALLBACK_REPLY = ("I'm not sure I understand. Try asking about 'eligibility', "
                  "'donation process', or 'emergency' help.")

SEARCH_PATH = '/search'
MAX_LISTED_DONORS = 3


def _contains_any(*words):
    return lambda text: any(word in text for word in words)


def _where_to_donate(text):
    return 'where' in text and 'donate' in text


@dataclass(frozen=True)
class Rule:
    name: str
    test: Callable[[str], bool]
    reply: str


REPLY_RULES = (
    Rule('greeting', _contains_any('hello', 'hi'),
         "Hello! I'm here to help you with blood donation queries. Ask me about eligibility, "
         "how to donate, or emergency requests."),
    Rule('eligibility', _contains_any('eligible', 'eligibility'),
         "To be eligible to donate blood, you must be 18-65 years old, weigh at least 50kg, and be "
         "in good health. Redirecting to the dashboard now, please take the eligibility quiz to see "
         "if you are eligible to donate first."),
    Rule('donation', _contains_any('donate', 'donation'),
         "You can donate by finding a nearby camp or hospital on our platform. Redirecting to the "
         "Camps page now, please register as a donor if you haven't already."),
    # Unreachable behind 'donation'; such questions still navigate to /camps.
    Rule('where_to_donate', _where_to_donate,
         "You can find donation camps near you. Redirecting to the camps page now, please check "
         "for upcoming donation events."),
)

NAVIGATION_RULES = (
    (_where_to_donate, '/camps'),
    (_contains_any('eligible', 'eligibility', 'donate', 'donation'), '/dashboard'),
)


def reply_for(text):
    lower = text.lower()
    for rule in REPLY_RULES:
        if rule.test(lower):
            return rule.reply
    return FALLBACK_REPLY


def navigation_for(text):
    lower = text.lower()
    for test, path in NAVIGATION_RULES:
        if test(lower):
            return path
    return None


def is_panic(text):
    lower = text.lower()
    return any(keyword in lower for keyword in PANIC_KEYWORDS)


def normalize_blood_group(text):
    # Taken verbatim; not validated against the eight blood types.
    return text.upper()


def normalize_city(text):
    # First character only: "new york" -> "New york".
    city = text.strip()
    return city[:1].upper() + city[1:].lower()


def format_donor_matches(donors, blood_group, city):
    listed = []
    for donor in donors:
        profile = donor.get('donorProfile')
        if not profile:
            continue
        listed.append((donor.get('name') or 'Anonymous', profile.get('phone') or 'N/A'))

    if not listed:
        return (f"I couldn't find any registered donors for {blood_group} in {city}. "
                "Redirecting to the map now, please try expanding your search area or "
                "contacting nearby hospitals directly.")

    lines = '\n'.join(f"• {name} ({phone})" for name, phone in listed[:MAX_LISTED_DONORS])
    return (f"Found {len(listed)} match(es) in {city}:\n{lines}\n\n"
            "Redirecting to the map now, please use the search filters to find and contact "
            "more donors.")


@dataclass
class Message:
    id: int
    text: str
    sender: str
    timestamp: str = field(default_factory=lambda: datetime.datetime.now().isoformat())

    def as_dict(self):
        return {'id': self.id, 'text': self.text, 'sender': self.sender, 'timestamp': self.timestamp}


class IntakeSession:
    """One chat window. ``scheduler.call_later(ms, fn, *args)`` runs the delayed work."""

    def __init__(self, store, scheduler, navigator, reply_delay_ms=1000, navigation_delay_ms=3000):
        self.store = store
        self.scheduler = scheduler
        self.navigator = navigator
        self.reply_delay_ms = reply_delay_ms
        self.navigation_delay_ms = navigation_delay_ms
        self.state = ChatState.NORMAL
        self.blood_group = ''
        self.transcript = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._append(WELCOME, 'bot')

    def _append(self, text, sender):
        with self._lock:
            message = Message(id=next(self._ids), text=text, sender=sender)
            self.transcript.append(message)
        return message

    def send(self, text) -> Optional[Message]:
        if not text or not text.strip():
            return None
        message = self._append(text, 'user')
        compute_reply = self._advance(text)
        self.scheduler.call_later(self.reply_delay_ms, self._deliver_reply, compute_reply)
        return message

    def _advance(self, text) -> Callable[[], Tuple[str, Optional[str]]]:
        """Apply the state change for ``text`` now; return how to build the reply later."""
        if self.state is ChatState.NORMAL and is_panic(text):
            self.state = ChatState.AWAITING_BLOOD_GROUP
            return lambda: (PROMPT_BLOOD_GROUP, None)

        if self.state is ChatState.AWAITING_BLOOD_GROUP:
            self.blood_group = normalize_blood_group(text)
            self.state = ChatState.AWAITING_CITY
            return lambda: (PROMPT_CITY, None)

        if self.state is ChatState.AWAITING_CITY:
            blood_group, city = self.blood_group, normalize_city(text)
            self.state = ChatState.NORMAL
            self.blood_group = ''
            return lambda: (self._search(blood_group, city), SEARCH_PATH)

        return lambda: (reply_for(text), navigation_for(text))

    def _search(self, blood_group, city):
        try:
            donors = find_emergency_donors(self.store, blood_group, city)
        except StoreError as exc:
            logger.error("Emergency donor search for %s in %s failed: %s", blood_group, city, exc)
            return SEARCH_FAILED
        logger.info("Emergency search %s in %s: %d donor(s)", blood_group, city, len(donors))
        return format_donor_matches(donors, blood_group, city)

    def _deliver_reply(self, compute_reply):
        text, path = compute_reply()
        self._append(text, 'bot')
        if path:
            self.scheduler.call_later(self.navigation_delay_ms, self.navigator, path)
