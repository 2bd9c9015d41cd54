from unittest.mock import MagicMock

from django.test import SimpleTestCase

from api import camps
from api.errors import StoreError
from api.store import MemoryDocumentStore


class CampTests(SimpleTestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()

    def _camp(self, date, **fields):
        return camps.add_donation_camp(self.store, "org1", dict({"campName": f"Camp {date}", "date": date}, **fields))

    def test_new_camp_is_upcoming(self):
        camp_id = self._camp("2026-05-01")
        camp = self.store.get("donationCamps", camp_id)
        self.assertEqual(camp["status"], "upcoming")
        self.assertEqual(camp["organizerId"], "org1")

    def test_split_orders_each_side(self):
        self._camp("2026-05-03")
        self._camp("2026-05-01")
        self._camp("2026-04-20")
        self._camp("2026-04-28")
        self._camp("2026-04-10", status="archived")
        upcoming, past = camps.split_camps(camps.get_donation_camps(self.store), today="2026-05-01")
        self.assertEqual([c["date"] for c in upcoming], ["2026-05-01", "2026-05-03"])
        self.assertEqual([c["date"] for c in past], ["2026-04-28", "2026-04-20"])

    def test_archive_only_camps_older_than_two_days(self):
        old = self._camp("2026-04-27")
        boundary = self._camp("2026-04-28")
        recent = self._camp("2026-04-29")
        self.assertEqual(camps.archive_old_camps(self.store, today="2026-04-30"), 1)
        self.assertEqual(self.store.get("donationCamps", old)["status"], "archived")
        self.assertEqual(self.store.get("donationCamps", boundary)["status"], "upcoming")
        self.assertEqual(self.store.get("donationCamps", recent)["status"], "upcoming")

    def test_archive_failure_is_logged_not_raised(self):
        store = MagicMock()
        store.query.side_effect = StoreError("down")
        with self.assertLogs("api.camps", level="ERROR"):
            self.assertEqual(camps.archive_old_camps(store, today="2026-04-30"), 0)
