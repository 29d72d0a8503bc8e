from db import init_db, get_session
from models import User
from main import ledger, participation
from vibe import VIBE_OPTIONS, apply_vibe_check, validate_vibe_answers
import random


def seed():
    init_db()
    session = get_session()
    # a verified, experienced host and a mixed crowd of travellers
    host = User(name="Vishnu Menon", kyc_verified=True, trips_completed=6, avg_rating=4.8, rating_count=6)
    users = [host]
    for i in range(1, 11):
        users.append(User(
            name=f"Traveler {i}",
            kyc_verified=random.random() < 0.6,
            trips_completed=random.randint(0, 6),
            trips_dropped=random.choice([0, 0, 0, 1]),
            avg_rating=round(random.uniform(3.0, 5.0), 2),
            rating_count=random.randint(0, 8),
            spam_count=random.choice([0, 0, 1]),
        ))
    for u in users:
        answers = {axis: random.choice(options) for axis, options in VIBE_OPTIONS.items()}
        apply_vibe_check(u, validate_vibe_answers(answers))
    session.add_all(users)
    session.commit()
    for u in users:
        session.refresh(u)
    session.close()

    trip = participation.create_trip("Goa Monsoon Escapade", host.id)
    for u in users[1:]:
        participation.request_to_join(trip.id, u.id)
    for m in participation.members(trip.id):
        if m.state == "REQUESTED":
            participation.approve(trip.id, host.id, m.user_id)

    bus = ledger.propose(trip.id, "transport", host.id, {"title": "Volvo AC Sleeper", "price_per_person": 1450})
    hotel = ledger.propose(trip.id, "lodging", users[1].id, {"title": "Calangute Beach Villa", "price_per_person": 8500})
    for u in users[2:6]:
        ledger.vote(trip.id, "transport", bus.id, u.id, "YES")
        ledger.vote(trip.id, "lodging", hotel.id, u.id, "YES")
    print(f"Seeded sample trip {trip.id} with {len(users)} users")


if __name__ == "__main__":
    seed()
