import os
import django
import random

# Setup Django Environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
django.setup()

from api.db import get_db
from api.donors import create_user_profile, register_donor, update_donor_eligibility
from api.states import BLOOD_TYPES


def seed_donors():
    store = get_db()

    cities = ["Bangalore", "Mumbai", "Pune", "Chennai", "Hyderabad"]
    first_names = ["Aarav", "Diya", "Ishaan", "Meera", "Kabir", "Ananya", "Rohan", "Sara", "Vivaan", "Nisha"]
    last_names = ["Sharma", "Iyer", "Reddy", "Khan", "Patel", "Nair", "Das", "Gupta"]

    print("--- Seeding 30 donors (24 eligible, 6 not) ---")

    for i in range(30):
        uid = f"donor_{i + 1}"
        city = random.choice(cities)
        create_user_profile(store, uid, {
            "name": f"{random.choice(first_names)} {random.choice(last_names)}",
            "email": f"donor_{i + 1}@test.com",
            "role": "donor",
            "location": {
                "lat": 12.9716 + random.uniform(-2, 2),
                "lng": 77.5946 + random.uniform(-2, 2),
            },
        })
        register_donor(store, uid, random.choice(BLOOD_TYPES), f"9{random.randint(100000000, 999999999)}", city)
        update_donor_eligibility(store, uid, i < 24)

    print("--- Seeding 3 seekers ---")
    for i in range(3):
        create_user_profile(store, f"seeker_{i + 1}", {
            "name": f"Seeker {i + 1}",
            "email": f"seeker_{i + 1}@test.com",
        })

    print("Done.")


if __name__ == "__main__":
    seed_donors()
