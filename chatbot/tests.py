from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, override_settings
from rest_framework.test import APIClient

from api.errors import StoreError
from api.store import MemoryDocumentStore

from .intake import (
    FALLBACK_REPLY,
    PROMPT_BLOOD_GROUP,
    PROMPT_CITY,
    SEARCH_FAILED,
    WELCOME,
    ChatState,
    IntakeSession,
    navigation_for,
    normalize_city,
    reply_for,
)
from .sessions import PendingNavigation, SessionRegistry


class ManualScheduler:
    """Collects delayed calls; the test decides when they run."""

    def __init__(self):
        self.pending = []

    def call_later(self, delay_ms, fn, *args):
        self.pending.append((delay_ms, fn, args))

    def run_next(self):
        delay_ms, fn, args = self.pending.pop(0)
        fn(*args)
        return delay_ms

    def run_all(self):
        delays = []
        while self.pending:
            delays.append(self.run_next())
        return delays

    def cancel_all(self):
        self.pending.clear()


def _donor(store, uid, name, phone, blood_type="O+", city="Pune", eligible=True):
    store.write("users", {
        "name": name,
        "isDonor": True,
        "isEligible": eligible,
        "donorProfile": {"bloodType": blood_type, "city": city, "phone": phone},
    }, doc_id=uid)


class IntakeTestCase(SimpleTestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()
        self.scheduler = ManualScheduler()
        self.navigator = MagicMock()
        self.session = IntakeSession(self.store, self.scheduler, self.navigator)

    def bot_messages(self):
        return [m.text for m in self.session.transcript if m.sender == "bot"]


class EmergencyFlowTests(IntakeTestCase):
    def test_session_opens_with_welcome(self):
        self.assertEqual(self.bot_messages(), [WELCOME])
        self.assertEqual(self.session.state, ChatState.NORMAL)

    def test_panic_keyword_asks_for_blood_group(self):
        self.session.send("I need blood urgently")
        self.assertEqual(self.session.state, ChatState.AWAITING_BLOOD_GROUP)
        self.assertEqual(self.bot_messages(), [WELCOME])
        self.assertEqual(self.scheduler.run_all(), [1000])
        self.assertEqual(self.bot_messages()[-1], PROMPT_BLOOD_GROUP)
        self.navigator.assert_not_called()

    def test_blood_group_is_uppercased_verbatim(self):
        self.session.state = ChatState.AWAITING_BLOOD_GROUP
        self.session.send("o+")
        self.assertEqual(self.session.state, ChatState.AWAITING_CITY)
        self.assertEqual(self.session.blood_group, "O+")
        self.scheduler.run_all()
        self.assertEqual(self.bot_messages()[-1], PROMPT_CITY)

    def test_any_text_is_taken_as_a_blood_group(self):
        self.session.state = ChatState.AWAITING_BLOOD_GROUP
        self.session.send(" hello ")
        self.assertEqual(self.session.blood_group, " HELLO ")

    def test_city_lookup_lists_up_to_three_donors_and_navigates(self):
        _donor(self.store, "d1", "Asha", "111")
        _donor(self.store, "d2", None, None)
        _donor(self.store, "d3", "Ravi", "333")
        _donor(self.store, "d4", "Sam", "444")
        _donor(self.store, "d5", "Not eligible", "555", eligible=False)
        _donor(self.store, "d6", "Wrong type", "666", blood_type="A+")
        self.session.state = ChatState.AWAITING_CITY
        self.session.blood_group = "O+"

        self.session.send("  pUNE ")

        self.assertEqual(self.session.state, ChatState.NORMAL)
        self.assertEqual(self.session.blood_group, "")
        self.assertEqual(self.scheduler.run_next(), 1000)
        reply = self.bot_messages()[-1]
        self.assertTrue(reply.startswith("Found 4 match(es) in Pune:\n"))
        self.assertEqual(reply.count("• "), 3)
        self.assertIn("Redirecting to the map now, please use the search filters", reply)
        self.navigator.assert_not_called()

        self.assertEqual(self.scheduler.run_next(), 3000)
        self.navigator.assert_called_once_with("/search")

    def test_single_word_city_lists_name_and_phone(self):
        _donor(self.store, "d1", "Asha", "111", city="Delhi")
        self.session.state = ChatState.AWAITING_CITY
        self.session.blood_group = "O+"

        self.session.send("delhi")

        self.assertEqual(self.session.state, ChatState.NORMAL)
        self.assertEqual(self.session.blood_group, "")
        self.scheduler.run_next()
        self.assertIn("• Asha (111)", self.bot_messages()[-1])
        self.scheduler.run_next()
        self.navigator.assert_called_once_with("/search")

    def test_multi_word_city_misses_title_cased_donor(self):
        # "new york" normalises to "New york", which does not equal "New York".
        _donor(self.store, "d1", "Asha", "111", city="New York")
        self.session.state = ChatState.AWAITING_CITY
        self.session.blood_group = "O+"

        self.session.send("new york")
        self.scheduler.run_all()

        reply = self.bot_messages()[-1]
        self.assertTrue(reply.startswith("I couldn't find any registered donors for O+ in New york."))
        self.assertNotIn("Asha", reply)
        self.assertEqual(self.session.state, ChatState.NORMAL)
        self.navigator.assert_called_once_with("/search")

    def test_missing_name_and_phone_have_placeholders(self):
        _donor(self.store, "d1", None, None)
        self.session.state = ChatState.AWAITING_CITY
        self.session.blood_group = "O+"
        self.session.send("pune")
        self.scheduler.run_next()
        self.assertIn("• Anonymous (N/A)", self.bot_messages()[-1])

    def test_no_match_still_resets_and_navigates(self):
        self.session.state = ChatState.AWAITING_CITY
        self.session.blood_group = "AB-"
        self.session.send("Nagpur")
        self.scheduler.run_all()
        self.assertEqual(self.bot_messages()[-1], (
            "I couldn't find any registered donors for AB- in Nagpur. Redirecting to the map now, "
            "please try expanding your search area or contacting nearby hospitals directly."))
        self.assertEqual(self.session.state, ChatState.NORMAL)
        self.navigator.assert_called_once_with("/search")

    def test_store_error_apologises_and_navigates(self):
        store = MagicMock()
        store.query.side_effect = StoreError("down")
        session = IntakeSession(store, self.scheduler, self.navigator)
        session.state = ChatState.AWAITING_CITY
        session.blood_group = "O+"
        session.send("Pune")
        with self.assertLogs("chatbot.intake", level="ERROR"):
            self.scheduler.run_all()
        self.assertEqual(session.transcript[-1].text, SEARCH_FAILED)
        self.assertEqual(session.state, ChatState.NORMAL)
        self.navigator.assert_called_once_with("/search")

    def test_full_conversation(self):
        _donor(self.store, "d1", "Asha", "111", blood_type="B-", city="Mumbai")
        self.session.send("emergency")
        self.session.send("b-")
        self.session.send("mumbai")
        self.scheduler.run_all()
        self.assertEqual(self.bot_messages()[1:3], [PROMPT_BLOOD_GROUP, PROMPT_CITY])
        self.assertEqual(self.bot_messages()[3], (
            "Found 1 match(es) in Mumbai:\n• Asha (111)\n\n"
            "Redirecting to the map now, please use the search filters to find and contact more donors."))

    def test_panic_words_are_ignored_outside_normal_state(self):
        self.session.state = ChatState.AWAITING_BLOOD_GROUP
        self.session.send("help")
        self.assertEqual(self.session.state, ChatState.AWAITING_CITY)
        self.assertEqual(self.session.blood_group, "HELP")


class InformationalReplyTests(IntakeTestCase):
    def test_blank_input_is_ignored(self):
        self.assertIsNone(self.session.send("   "))
        self.assertIsNone(self.session.send(""))
        self.assertEqual(len(self.session.transcript), 1)
        self.assertEqual(self.scheduler.pending, [])

    def test_user_message_is_appended_immediately(self):
        message = self.session.send("Hello there")
        self.assertEqual(self.session.transcript[-1], message)
        self.assertEqual(message.sender, "user")

    def test_greeting(self):
        self.session.send("hi")
        self.scheduler.run_all()
        self.assertTrue(self.bot_messages()[-1].startswith("Hello! I'm here to help you with blood donation"))
        self.navigator.assert_not_called()

    def test_eligibility_navigates_to_dashboard(self):
        self.session.send("Am I ELIGIBLE?")
        self.assertEqual(self.scheduler.run_all(), [1000, 3000])
        self.assertIn("18-65 years old", self.bot_messages()[-1])
        self.navigator.assert_called_once_with("/dashboard")

    def test_where_to_donate_gets_donation_reply_and_camps_page(self):
        self.session.send("Where can I donate?")
        self.scheduler.run_all()
        self.assertTrue(self.bot_messages()[-1].startswith("You can donate by finding a nearby camp"))
        self.assertEqual(reply_for("where do i donate"), reply_for("donation"))
        self.navigator.assert_called_once_with("/camps")

    def test_donation_reply(self):
        self.session.send("tell me about donation")
        self.scheduler.run_all()
        self.assertTrue(self.bot_messages()[-1].startswith("You can donate by finding a nearby camp"))
        self.navigator.assert_called_once_with("/dashboard")

    def test_fallback(self):
        self.session.send("what's the weather")
        self.scheduler.run_all()
        self.assertEqual(self.bot_messages()[-1], FALLBACK_REPLY)
        self.navigator.assert_not_called()

    def test_first_matching_rule_wins(self):
        # "this" contains "hi"
        self.assertEqual(reply_for("is this eligible"), reply_for("hello"))
        self.assertEqual(navigation_for("is this eligible"), "/dashboard")
        self.assertIsNone(navigation_for("hello"))

    def test_state_changes_before_the_reply_lands(self):
        self.session.send("urgent")
        self.session.send("o-")
        self.assertEqual(self.session.state, ChatState.AWAITING_CITY)
        self.assertEqual(self.session.blood_group, "O-")
        self.assertEqual(self.bot_messages(), [WELCOME])

    def test_city_title_case_is_naive(self):
        self.assertEqual(normalize_city("  new YORK "), "New york")
        self.assertEqual(normalize_city("   "), "")


class NavigationTests(SimpleTestCase):
    def test_pending_navigation_is_consumed_once(self):
        navigation = PendingNavigation()
        self.assertIsNone(navigation.pop())
        navigation("/camps")
        self.assertEqual(navigation.pop(), "/camps")
        self.assertIsNone(navigation.pop())


@override_settings(CHATBOT_REPLY_DELAY_MS=0, CHATBOT_NAVIGATION_DELAY_MS=0)
class ChatbotViewTests(SimpleTestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()
        self.registry = SessionRegistry(lambda: self.store)
        self.scheduler = ManualScheduler()
        patcher = patch("chatbot.views.get_registry", return_value=self.registry)
        patcher.start()
        self.addCleanup(patcher.stop)
        patcher = patch("chatbot.sessions.TimerScheduler", return_value=self.scheduler)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.client = APIClient()

    def test_ask_then_read_history(self):
        response = self.client.post("/api/chatbot/ask", {"message": "Am I eligible?"}, format="json")
        self.assertEqual(response.status_code, 200)
        conversation_id = response.json()["conversation_id"]
        self.assertEqual(response.json()["message"]["sender"], "user")

        self.scheduler.run_all()
        history = self.client.get("/api/chatbot/history", {"conversation_id": conversation_id}).json()
        self.assertEqual([m["sender"] for m in history["messages"]], ["bot", "user", "bot"])
        self.assertEqual(history["navigate_to"], "/dashboard")
        self.assertEqual(history["state"], "normal")

        history = self.client.get("/api/chatbot/history", {"conversation_id": conversation_id}).json()
        self.assertIsNone(history["navigate_to"])

    def test_conversation_keeps_state_between_requests(self):
        first = self.client.post("/api/chatbot/ask", {"message": "emergency"}, format="json").json()
        second = self.client.post("/api/chatbot/ask", {"message": "a+", "conversation_id": first["conversation_id"]},
                                  format="json").json()
        self.assertEqual(first["state"], "emergency.awaiting_blood_group")
        self.assertEqual(second["state"], "emergency.awaiting_city")

    def test_validation_and_unknown_conversations(self):
        self.assertEqual(self.client.post("/api/chatbot/ask", {"message": "  "}, format="json").status_code, 400)
        response = self.client.post("/api/chatbot/ask", {"message": "hi", "conversation_id": "nope"}, format="json")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.get("/api/chatbot/history").status_code, 400)
        self.assertEqual(self.client.get("/api/chatbot/history", {"conversation_id": "nope"}).status_code, 404)

    def test_delete_conversation(self):
        conversation_id = self.client.post("/api/chatbot/ask", {"message": "hi"}, format="json").json()["conversation_id"]
        self.assertEqual(self.client.delete(f"/api/chatbot/conversations/{conversation_id}").status_code, 200)
        self.assertEqual(self.client.delete(f"/api/chatbot/conversations/{conversation_id}").status_code, 404)
