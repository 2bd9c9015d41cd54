import os
import django
import random
import datetime

# Setup Django Environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
django.setup()

from api.db import get_db
from api.camps import add_donation_camp
from api.inventory import adjust_stock, create_hospital_inventory
from api.states import BLOOD_TYPES


def seed_hospitals():
    store = get_db()

    areas = ["Bangalore Central", "Indiranagar", "Koramangala", "Whitefield", "Jayanagar",
             "Malleswaram", "Yelahanka", "Electronic City", "Hebbal", "Banashankari"]

    print(f"--- Seeding {len(areas)} hospitals around Bangalore ---")

    for i, area in enumerate(areas):
        hospital_id = f"hospital_{i + 1}"
        create_hospital_inventory(store, hospital_id, {
            "hospitalName": f"{area} General Hospital",
            "licenseId": f"KA-BB-{1000 + i}",
            "address": f"{area}, Bangalore",
            "phoneNumber": f"080{random.randint(2000000, 9999999)}",
            "location": {
                "lat": 12.9716 + random.uniform(-0.1, 0.1),
                "lng": 77.5946 + random.uniform(-0.1, 0.1),
            },
        })
        for blood_type in BLOOD_TYPES:
            adjust_stock(store, hospital_id, blood_type, random.randint(0, 12))
        print(f"Seeded {hospital_id} ({area})")

    print("--- Seeding donation camps ---")
    today = datetime.date.today()
    for offset, area in ((-10, "Hebbal"), (3, "Jayanagar"), (12, "Whitefield")):
        camp_id = add_donation_camp(store, "organizer_demo", {
            "campName": f"{area} Community Blood Drive",
            "organizerName": "BloodLink Volunteers",
            "date": (today + datetime.timedelta(days=offset)).isoformat(),
            "location": f"{area} Community Hall",
            "coordinates": {
                "lat": 12.9716 + random.uniform(-0.1, 0.1),
                "lng": 77.5946 + random.uniform(-0.1, 0.1),
            },
        })
        print(f"Seeded camp {camp_id} in {area}")

    print("Done.")


if __name__ == "__main__":
    seed_hospitals()
