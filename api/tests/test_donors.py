from django.test import SimpleTestCase

from api import donors
from api.errors import DocumentNotFound
from api.store import MemoryDocumentStore


class DonorRegistryTests(SimpleTestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()

    def _donor(self, uid, blood_type, city, eligible=True, name=None):
        donors.create_user_profile(self.store, uid, {"name": name or uid, "email": f"{uid}@x.org"})
        donors.register_donor(self.store, uid, blood_type, "9000", city)
        donors.update_donor_eligibility(self.store, uid, eligible)

    def test_new_profile_defaults(self):
        donors.create_user_profile(self.store, "u1", {"name": "Asha"})
        user = donors.get_user_profile(self.store, "u1")
        self.assertEqual(user["role"], "seeker")
        self.assertFalse(user["isDonor"])
        self.assertIn("createdAt", user)

    def test_registration_initialises_the_donor_profile(self):
        self._donor("d1", "AB-", "Pune")
        user = donors.require_user(self.store, "d1")
        self.assertTrue(user["isDonor"])
        self.assertTrue(user["isEligible"])
        self.assertIn("lastChecked", user)
        self.assertEqual(user["donorProfile"]["totalDonations"], 0)
        self.assertIsNone(user["donorProfile"]["lastDonation"])

    def test_registering_unknown_user_fails(self):
        with self.assertRaises(DocumentNotFound):
            donors.register_donor(self.store, "ghost", "O+", "1", "Pune")
        with self.assertRaises(DocumentNotFound):
            donors.require_user(self.store, "ghost")

    def test_search_matches_city_substring_case_insensitively(self):
        self._donor("d1", "O+", "Pune")
        self._donor("d2", "O+", "Navi Mumbai")
        self._donor("d3", "A+", "Pune")
        found = donors.search_donors(self.store, "O+", "mum")
        self.assertEqual([d["id"] for d in found], ["d2"])
        self.assertEqual(found[0]["type"], "donor")
        self.assertEqual(len(donors.search_donors(self.store, None, "PUNE")), 2)
        self.assertEqual(len(donors.search_donors(self.store)), 3)

    def test_emergency_lookup_is_exact_and_eligible_only(self):
        self._donor("d1", "O+", "Pune")
        self._donor("d2", "O+", "Pune", eligible=False)
        self._donor("d3", "O+", "pune")
        donors.create_user_profile(self.store, "d4", {"name": "never checked"})
        donors.register_donor(self.store, "d4", "O+", "1", "Pune")
        found = donors.find_emergency_donors(self.store, "O+", "Pune")
        self.assertEqual([d["id"] for d in found], ["d1"])

    def test_fcm_token_saved(self):
        donors.create_user_profile(self.store, "u1", {})
        donors.save_fcm_token(self.store, "u1", "tok")
        self.assertEqual(donors.get_user_profile(self.store, "u1")["fcmToken"], "tok")
