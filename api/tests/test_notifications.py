"""Email, push and in-app alert channels."""

from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, override_settings
from firebase_admin.exceptions import FirebaseError

from api import notifications
from api.errors import StoreError
from api.notifications import (
    Delivery,
    EmailDispatcher,
    NotificationPermission,
    WatchlistAlerter,
    display_name,
    notify_request_accepted,
    run_best_effort,
    send_blood_request_notification,
    send_push_multicast,
)
from api.store import MERGE, MemoryDocumentStore


@override_settings(FRONTEND_URL="https://bloodlink.example", DEFAULT_FROM_EMAIL="noreply@bloodlink.example")
class EmailTests(SimpleTestCase):
    def setUp(self):
        self.sender = MagicMock()

    def test_one_mail_per_recipient_with_rendered_template(self):
        dispatcher = EmailDispatcher(sender=self.sender)
        deliveries = send_blood_request_notification(
            [{"email": "a@x.org", "name": "Asha"}, {"email": "b@x.org"}],
            {"bloodType": "O-", "seekerName": "Meera", "location": "Pune"},
            dispatcher=dispatcher,
        )

        self.assertEqual([d.recipient for d in deliveries], ["a@x.org", "b@x.org"])
        self.assertTrue(all(d.ok for d in deliveries))
        self.assertEqual(self.sender.call_count, 2)
        first = self.sender.call_args_list[0].kwargs
        self.assertEqual(first["subject"], "Urgent: O- blood needed")
        self.assertEqual(first["recipient_list"], ["a@x.org"])
        self.assertEqual(first["from_email"], "noreply@bloodlink.example")
        self.assertIn("Hello Asha", first["message"])
        self.assertIn("A seeker needs O- blood immediately.", first["message"])
        self.assertIn("https://bloodlink.example/dashboard", first["message"])
        self.assertIn("Hello Hero", self.sender.call_args_list[1].kwargs["message"])

    def test_recipients_without_email_are_skipped(self):
        deliveries = send_blood_request_notification(
            [{"name": "No Mail"}, {"email": "b@x.org"}], {}, dispatcher=EmailDispatcher(sender=self.sender))
        self.assertEqual([d.recipient for d in deliveries], ["b@x.org"])

    def test_partial_failure_is_reported_per_recipient(self):
        self.sender.side_effect = [OSError("smtp down"), None]
        with self.assertLogs("api.notifications", level="WARNING"):
            deliveries = send_blood_request_notification(
                [{"email": "a@x.org"}, {"email": "b@x.org"}], {"bloodType": "A+"},
                dispatcher=EmailDispatcher(sender=self.sender))
        self.assertEqual([d.ok for d in deliveries], [False, True])
        self.assertIn("smtp down", str(deliveries[0].error))

    def test_unknown_template_fails_every_recipient(self):
        dispatcher = EmailDispatcher(templates={}, sender=self.sender)
        with self.assertLogs("api.notifications", level="ERROR"):
            deliveries = dispatcher.send("missing", [{"to_email": "a@x.org"}])
        self.assertFalse(deliveries[0].ok)
        self.sender.assert_not_called()

    def test_no_donors_sends_nothing(self):
        self.assertEqual(send_blood_request_notification([], {}), [])


@override_settings(FRONTEND_URL="https://bloodlink.example")
class AcceptanceEmailTests(SimpleTestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()
        self.sender = MagicMock()

    def test_seeker_gets_donor_details(self):
        self.store.write("users", {"email": "seeker@x.org", "name": "Meera"}, doc_id="s1")
        delivery = notify_request_accepted(
            self.store, "s1", {"name": "Ravi", "phone": "98765", "bloodType": "O+"},
            dispatcher=EmailDispatcher(sender=self.sender))
        self.assertTrue(delivery.ok)
        kwargs = self.sender.call_args.kwargs
        self.assertEqual(kwargs["subject"], "Ravi accepted your blood request")
        self.assertIn("Donor phone: 98765", kwargs["message"])
        self.assertIn("https://bloodlink.example/search", kwargs["message"])

    def test_missing_phone_reads_not_shared(self):
        self.store.write("users", {"email": "seeker@x.org"}, doc_id="s1")
        notify_request_accepted(self.store, "s1", {"name": "Ravi", "bloodType": "O+"},
                                dispatcher=EmailDispatcher(sender=self.sender))
        self.assertIn("Donor phone: Not shared", self.sender.call_args.kwargs["message"])

    def test_seeker_without_email_is_skipped(self):
        self.store.write("users", {"name": "No Mail"}, doc_id="s1")
        with self.assertLogs("api.notifications", level="ERROR"):
            self.assertIsNone(notify_request_accepted(self.store, "s1", {"name": "Ravi"},
                                                      dispatcher=EmailDispatcher(sender=self.sender)))
        self.sender.assert_not_called()

    def test_store_failure_is_swallowed(self):
        store = MagicMock()
        store.get.side_effect = StoreError("down")
        with self.assertLogs("api.notifications", level="ERROR"):
            self.assertIsNone(notify_request_accepted(store, "s1", {"name": "Ravi"}))


class PushTests(SimpleTestCase):
    def test_push_is_skipped_when_firebase_is_not_ready(self):
        with patch.object(notifications, "firebase_ready", return_value=False), \
                self.assertLogs("api.notifications", level="WARNING"):
            deliveries = send_push_multicast(["t1", "t2"], "Title", "Body")
        self.assertEqual([(d.recipient, d.ok) for d in deliveries], [("t1", False), ("t2", False)])

    def test_empty_tokens_send_nothing(self):
        self.assertEqual(send_push_multicast([None, ""], "Title", "Body"), [])

    def test_per_token_outcomes(self):
        response = MagicMock(success_count=1)
        response.responses = [MagicMock(success=True), MagicMock(success=False, exception="unregistered")]
        with patch.object(notifications, "firebase_ready", return_value=True), \
                patch.object(notifications.messaging, "send_each_for_multicast", return_value=response) as send:
            deliveries = send_push_multicast(["t1", "t2"], "Title", "Body", {"n": 1})
        self.assertEqual([d.ok for d in deliveries], [True, False])
        message = send.call_args.args[0]
        self.assertEqual(message.tokens, ["t1", "t2"])
        self.assertEqual(message.data, {"n": "1"})

    def test_multicast_error_fails_every_token(self):
        with patch.object(notifications, "firebase_ready", return_value=True), \
                patch.object(notifications.messaging, "send_each_for_multicast",
                             side_effect=FirebaseError("UNAVAILABLE", "fcm down")), \
                self.assertLogs("api.notifications", level="ERROR"):
            deliveries = send_push_multicast(["t1"], "Title", "Body")
        self.assertFalse(deliveries[0].ok)


class WatchlistAlerterTests(SimpleTestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()
        self.push = MagicMock(return_value=[Delivery(recipient="tok", ok=True)])

    def _seeker(self, **fields):
        self.store.write("users", dict({"name": "Meera"}, **fields), doc_id="s1")
        return WatchlistAlerter(self.store, "s1", push=self.push)

    def test_granted_permission_pushes(self):
        alerter = self._seeker(notificationPermission="granted", fcmToken="tok")
        delivery = alerter.notify("Title", "Body", {"bloodType": "O+"})
        self.assertTrue(delivery.ok)
        self.push.assert_called_once_with(["tok"], "Title", "Body", {"bloodType": "O+"})
        self.assertEqual(self.store.query("notifications"), [])

    def test_without_permission_records_blocking_alert(self):
        alerter = self._seeker()
        alerter.notify("Blood Type Match Found!", "O+ blood is now available in Pune.")
        self.push.assert_not_called()
        alert, = self.store.query("notifications")
        self.assertEqual(alert["userId"], "s1")
        self.assertEqual(alert["message"], "O+ blood is now available in Pune.")
        self.assertEqual(alert["type"], "WATCHLIST_MATCH")
        self.assertTrue(alert["blocking"])
        self.assertEqual(alert["status"], "UNREAD")

    def test_failed_push_falls_back_to_alert(self):
        self.push.return_value = [Delivery(recipient="tok", ok=False)]
        alerter = self._seeker(notificationPermission="granted", fcmToken="tok")
        with self.assertLogs("api.notifications", level="WARNING"):
            alerter.notify("Title", "Body")
        self.assertEqual(len(self.store.query("notifications")), 1)

    def test_permission_is_read_once(self):
        alerter = self._seeker(notificationPermission="denied")
        self.assertIs(alerter.permission, NotificationPermission.DENIED)
        self.store.write("users", {"notificationPermission": "granted"}, doc_id="s1", mode=MERGE)
        self.assertIs(alerter.permission, NotificationPermission.DENIED)

    def test_request_permission_persists_answer(self):
        alerter = self._seeker()
        self.assertIs(alerter.request_permission("granted"), NotificationPermission.GRANTED)
        self.assertEqual(self.store.get("users", "s1")["notificationPermission"], "granted")
        with self.assertRaises(ValueError):
            alerter.request_permission("maybe")

    def test_request_permission_merges_into_the_profile(self):
        store = MagicMock()
        alerter = WatchlistAlerter(store, "s1", push=self.push)
        alerter.request_permission("denied")
        store.write.assert_called_once_with(
            "users", {"notificationPermission": "denied"}, doc_id="s1", mode=MERGE)

    def test_alert_store_failure_is_an_outcome(self):
        store = MagicMock()
        store.write.side_effect = StoreError("down")
        with self.assertLogs("api.notifications", level="ERROR"):
            delivery = WatchlistAlerter(store, "s1").alert("Title", "Body")
        self.assertFalse(delivery.ok)


class HelperTests(SimpleTestCase):
    def test_display_name_fallbacks(self):
        self.assertEqual(display_name({"name": "Ravi", "email": "r@x.org"}), "Ravi")
        self.assertEqual(display_name({"email": "ravi.k@x.org"}), "ravi.k")
        self.assertEqual(display_name({}), "Anonymous")

    @override_settings(NOTIFICATIONS_RUN_INLINE=True)
    def test_best_effort_swallows_and_logs(self):
        def broken():
            raise RuntimeError("boom")

        with self.assertLogs("api.notifications", level="ERROR") as logs:
            self.assertIsNone(run_best_effort(broken))
        self.assertIn("broken", logs.output[0])

    @override_settings(NOTIFICATIONS_RUN_INLINE=False)
    def test_best_effort_runs_on_a_thread(self):
        calls = []
        thread = run_best_effort(calls.append, "done")
        thread.join(timeout=5)
        self.assertEqual(calls, ["done"])
