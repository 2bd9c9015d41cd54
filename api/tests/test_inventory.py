from unittest.mock import MagicMock

from django.test import SimpleTestCase

from api import inventory
from api.store import MERGE, MemoryDocumentStore


def _hospital(store, hospital_id, name="City Hospital", address="MG Road, Pune", location=None, **stock):
    inventory.create_hospital_inventory(store, hospital_id, {
        "hospitalName": name, "address": address, "location": location,
    })
    for blood_type, units in stock.items():
        inventory.adjust_stock(store, hospital_id, blood_type.replace("_pos", "+").replace("_neg", "-"), units)


class StockTests(SimpleTestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()

    def test_new_hospital_starts_with_zero_of_every_type(self):
        _hospital(self.store, "h1")
        stock = inventory.get_inventory(self.store, "h1")["bloodStock"]
        self.assertEqual(sorted(stock), sorted(["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"]))
        self.assertTrue(all(units == 0 for units in stock.values()))

    def test_adjust_adds_and_clamps_at_zero(self):
        _hospital(self.store, "h1")
        self.assertEqual(inventory.adjust_stock(self.store, "h1", "O+", 5), 5)
        self.assertEqual(inventory.adjust_stock(self.store, "h1", "O+", -2), 3)
        self.assertEqual(inventory.adjust_stock(self.store, "h1", "O+", -10), 0)
        self.assertEqual(inventory.get_inventory(self.store, "h1")["bloodStock"]["O+"], 0)
        self.assertEqual(inventory.get_inventory(self.store, "h1")["bloodStock"]["A+"], 0)

    def test_adjust_unknown_hospital_is_ignored(self):
        with self.assertLogs("api.inventory", level="WARNING"):
            self.assertIsNone(inventory.adjust_stock(self.store, "nope", "O+", 1))

    def test_filter_by_stock_and_location(self):
        _hospital(self.store, "h1", name="City Hospital", address="MG Road, Pune", O_pos=2)
        _hospital(self.store, "h2", name="Mumbai Central", address="Dadar", O_pos=1)
        _hospital(self.store, "h3", name="Pune General", address="Camp", A_pos=1)
        items = inventory.list_active_inventory(self.store)

        self.assertEqual(sorted(i["id"] for i in inventory.filter_inventory(items, "O+")), ["h1", "h2"])
        self.assertEqual(sorted(i["id"] for i in inventory.filter_inventory(items, None, "pune")), ["h1", "h3"])
        self.assertEqual([i["id"] for i in inventory.filter_inventory(items, "O+", "PUNE")], ["h1"])


class WatchlistTests(SimpleTestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()

    def test_add_and_deactivate(self):
        entry_id = inventory.add_to_watchlist(self.store, "s1", "O-", "Pune")
        inventory.add_to_watchlist(self.store, "s2", "A+")
        self.assertEqual([e["id"] for e in inventory.get_watchlist(self.store, "s1")], [entry_id])
        self.assertEqual(len(inventory.get_all_active_watchlists(self.store)), 2)

        inventory.deactivate_watchlist_entry(self.store, entry_id)
        self.assertEqual(inventory.get_watchlist(self.store, "s1"), [])
        self.assertEqual(self.store.get("watchlists", entry_id)["status"], "cancelled")

    def test_location_text_prefers_string_location(self):
        self.assertEqual(inventory.location_text({"location": "Kothrud", "address": "MG Road"}), "Kothrud")
        self.assertEqual(inventory.location_text({"location": {"lat": 1, "lng": 2}, "address": "MG Road"}), "MG Road")
        self.assertEqual(inventory.location_text({}), "")

    def test_entry_matches_on_stock_and_location_substring(self):
        watchlist = [
            {"id": "w1", "bloodType": "O+", "location": "pune"},
            {"id": "w2", "bloodType": "O+", "location": ""},
            {"id": "w3", "bloodType": "A+", "location": ""},
            {"id": "w4", "bloodType": "O+", "location": "mumbai"},
        ]
        doc = {"address": "MG Road, Pune", "bloodStock": {"O+": 1, "A+": 0}}
        self.assertEqual([e["id"] for e in inventory.watchlist_matches(watchlist, doc)], ["w1", "w2"])


class MatchingFeedTests(SimpleTestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()
        self.alerter = MagicMock()

    def test_existing_stock_alerts_on_subscribe(self):
        _hospital(self.store, "h1", O_pos=2)
        inventory.subscribe_matching_inventory(self.store, [{"id": "w1", "bloodType": "O+", "location": ""}],
                                               self.alerter)
        self.alerter.notify.assert_called_once_with(
            "Blood Type Match Found!",
            "O+ blood is now available in MG Road, Pune.",
            {"inventoryId": "h1", "bloodType": "O+"},
        )

    def test_stock_arriving_later_alerts(self):
        _hospital(self.store, "h1")
        inventory.subscribe_matching_inventory(self.store, [{"id": "w1", "bloodType": "O-", "location": "pune"}],
                                               self.alerter)
        self.alerter.notify.assert_not_called()
        inventory.adjust_stock(self.store, "h1", "O-", 1)
        self.assertEqual(self.alerter.notify.call_count, 1)

    def test_stock_set_at_a_matching_hospital_alerts_once(self):
        _hospital(self.store, "h1", name="Delhi Central", address="Delhi Central")
        inventory.subscribe_matching_inventory(self.store, [{"id": "w1", "bloodType": "A-", "location": "Delhi"}],
                                               self.alerter)
        inventory.adjust_stock(self.store, "h1", "A-", 3)
        self.alerter.notify.assert_called_once_with(
            "Blood Type Match Found!",
            "A- blood is now available in Delhi Central.",
            {"inventoryId": "h1", "bloodType": "A-"},
        )

    def test_every_change_to_a_matching_hospital_alerts_again(self):
        _hospital(self.store, "h1", O_pos=2)
        watchlist = [
            {"id": "w1", "bloodType": "O+", "location": ""},
            {"id": "w2", "bloodType": "O+", "location": "pune"},
        ]
        inventory.subscribe_matching_inventory(self.store, watchlist, self.alerter)
        self.assertEqual(self.alerter.notify.call_count, 2)

        self.store.write("inventory", {"phoneNumber": "020-1234"}, doc_id="h1", mode=MERGE)
        self.assertEqual(self.alerter.notify.call_count, 4)

    def test_location_mismatch_never_alerts(self):
        _hospital(self.store, "h1", address="Dadar, Mumbai", O_pos=2)
        inventory.subscribe_matching_inventory(self.store, [{"id": "w1", "bloodType": "O+", "location": "pune"}],
                                               self.alerter)
        inventory.adjust_stock(self.store, "h1", "O+", 1)
        self.alerter.notify.assert_not_called()

    def test_empty_watchlist_opens_no_subscription(self):
        unsubscribe = inventory.subscribe_matching_inventory(self.store, [], self.alerter)
        unsubscribe()
        _hospital(self.store, "h1", O_pos=2)
        self.alerter.notify.assert_not_called()

    def test_unsubscribe_stops_alerts(self):
        _hospital(self.store, "h1")
        unsubscribe = inventory.subscribe_matching_inventory(
            self.store, [{"id": "w1", "bloodType": "O+", "location": ""}], self.alerter)
        unsubscribe()
        inventory.adjust_stock(self.store, "h1", "O+", 3)
        self.alerter.notify.assert_not_called()


class LiveWatchlistTests(SimpleTestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()
        self.alerter = MagicMock()
        _hospital(self.store, "h1", name="Delhi Central", address="Delhi Central")

    def test_deactivated_entry_stops_alerting(self):
        entry_id = inventory.add_to_watchlist(self.store, "s1", "A-", "Delhi")
        watch = inventory.SeekerWatch(self.store, "s1", self.alerter)
        self.addCleanup(watch.close)
        self.assertEqual([e["id"] for e in watch.watchlist], [entry_id])

        inventory.deactivate_watchlist_entry(self.store, entry_id)
        self.assertEqual(watch.watchlist, [])
        inventory.adjust_stock(self.store, "h1", "A-", 3)
        self.alerter.notify.assert_not_called()

    def test_entry_added_later_is_watched(self):
        watch = inventory.SeekerWatch(self.store, "s1", self.alerter)
        self.addCleanup(watch.close)
        inventory.add_to_watchlist(self.store, "s1", "O+")
        inventory.add_to_watchlist(self.store, "s2", "O+")
        self.assertEqual(len(watch.watchlist), 1)
        self.alerter.notify.assert_not_called()

        inventory.adjust_stock(self.store, "h1", "O+", 1)
        self.assertEqual(self.alerter.notify.call_count, 1)

    def test_close_stops_both_feeds(self):
        inventory.add_to_watchlist(self.store, "s1", "O+")
        watch = inventory.SeekerWatch(self.store, "s1", self.alerter)
        watch.close()
        inventory.add_to_watchlist(self.store, "s1", "A+")
        inventory.adjust_stock(self.store, "h1", "O+", 1)
        self.alerter.notify.assert_not_called()
        self.assertEqual(self.store._subscriptions, [])

    def test_matcher_follows_seekers_as_entries_come_and_go(self):
        matcher = inventory.WatchlistMatcher(self.store, lambda seeker_id: self.alerter).start()
        self.assertEqual(matcher.watches, {})

        entry_id = inventory.add_to_watchlist(self.store, "s2", "B+", "delhi")
        self.assertEqual(list(matcher.watches), ["s2"])
        inventory.adjust_stock(self.store, "h1", "B+", 2)
        self.assertEqual(self.alerter.notify.call_count, 1)

        inventory.deactivate_watchlist_entry(self.store, entry_id)
        self.assertEqual(matcher.watches, {})
        inventory.adjust_stock(self.store, "h1", "B+", 1)
        self.assertEqual(self.alerter.notify.call_count, 1)
        self.assertEqual(matcher.close(), 0)
        self.assertEqual(self.store._subscriptions, [])

    def test_matcher_user_filter(self):
        inventory.add_to_watchlist(self.store, "s1", "O+")
        inventory.add_to_watchlist(self.store, "s2", "O+")
        matcher = inventory.WatchlistMatcher(self.store, lambda seeker_id: self.alerter, user_ids=["s2"]).start()
        self.addCleanup(matcher.close)
        self.assertEqual(list(matcher.watches), ["s2"])
