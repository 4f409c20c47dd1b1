import random
import uuid
from datetime import date, timedelta
from typing import Any

from sqlalchemy import text

from ..auth.security import hash_password
from ..config import FAKE_USER_EMAIL_DOMAIN, FAKE_USER_PASSWORD

FEMALE_FIRST_NAMES = ["Besa", "Chipo", "Dalitso", "Kondwani", "Ludo", "Mapalo", "Mumba", "Natasha", "Samba", "Thandiwe", "Wezi", "Zola"]
MALE_FIRST_NAMES = ["Banda", "Chibwe", "Daka", "Kabwe", "Lungu", "Moyo", "Ndhlovu", "Phiri", "Sichone", "Tembo", "Zaza"]
LAST_NAMES = ["Banda", "Phiri", "Mumba", "Tembo", "Sakala", "Lungu", "Daka", "Mwila", "Chanda", "Mulenga", "Soko"]
OCCUPATIONS = [
    "Software Engineer",
    "Doctor",
    "Teacher",
    "Accountant",
    "Entrepreneur",
    "Marketing Manager",
    "Graphic Designer",
    "Civil Servant",
    "Nurse",
    "Farmer",
]
CITIES = ["Lusaka", "Ndola", "Kitwe", "Kabwe", "Chingola", "Mufulira", "Livingstone"]
COUNTRY = "Zambia"
INTERESTS = ["music", "travel", "football", "cooking", "reading", "hiking", "dancing", "photography", "fitness", "movies", "art", "fashion"]
RELATIONSHIP_GOALS = ["casual", "serious", "friendship", "networking"]

FEMALE_PHOTO_URLS = [
    "https://images.pexels.com/photos/415829/pexels-photo-415829.jpeg",
    "https://images.pexels.com/photos/1181686/pexels-photo-1181686.jpeg",
    "https://images.pexels.com/photos/774909/pexels-photo-774909.jpeg",
    "https://images.unsplash.com/photo-1524504388940-b1c1722653e1",
    "https://images.unsplash.com/photo-1544005313-94ddf0286df2",
    "https://images.unsplash.com/photo-1517841905240-472988babdf9",
]
MALE_PHOTO_URLS = [
    "https://images.pexels.com/photos/2379004/pexels-photo-2379004.jpeg",
    "https://images.pexels.com/photos/614810/pexels-photo-614810.jpeg",
    "https://images.pexels.com/photos/1704488/pexels-photo-1704488.jpeg",
    "https://images.unsplash.com/photo-1527980965255-d3b416303d12",
    "https://images.unsplash.com/photo-1521572267360-ee0c2909d518",
    "https://images.unsplash.com/photo-1494790108377-be9c29b29330",
]

MAX_FAKE_USERS_PER_RUN = 100
DEFAULT_BACKFILL_LIMIT = 200
MAX_BACKFILL_LIMIT = 1000


def _years_before(d: date, years: int) -> date:
    try:
        return d.replace(year=d.year - years)
    except ValueError:
        return d.replace(year=d.year - years, day=28)


def photo_url_for(gender: str | None, index: int) -> str:
    pool = MALE_PHOTO_URLS if gender == "male" else FEMALE_PHOTO_URLS
    return pool[index % len(pool)]


def build_fake_user(rng: random.Random, is_female: bool, today: date) -> dict[str, Any]:
    gender = "female" if is_female else "male"
    first_name = rng.choice(FEMALE_FIRST_NAMES if is_female else MALE_FIRST_NAMES)
    last_name = rng.choice(LAST_NAMES)
    age = rng.randint(20, 40)
    dob = _years_before(today, age) - timedelta(days=rng.randint(0, 300))
    city = rng.choice(CITIES)
    occupation = rng.choice(OCCUPATIONS)
    return {
        "email": f"{first_name.lower()}.{last_name.lower()}.{rng.randint(100, 999)}.{uuid.uuid4().hex[:6]}@{FAKE_USER_EMAIL_DOMAIN}",
        "first_name": first_name,
        "last_name": last_name,
        "date_of_birth": dob,
        "gender": gender,
        "interested_in": ["male" if is_female else "female"],
        "bio": f"Hi, I'm {first_name}. Living in {city} and working as a {occupation}. Let's connect!",
        "occupation": occupation,
        "location_city": city,
        "location_state": COUNTRY,
        "interests": rng.sample(INTERESTS, 3),
        "relationship_goals": [rng.choice(RELATIONSHIP_GOALS)],
        "photo_url": photo_url_for(gender, rng.randrange(len(FEMALE_PHOTO_URLS))),
    }


def _insert_fake_user(db, user: dict[str, Any], password_hash: str) -> str:
    user_id = str(uuid.uuid4())
    db.execute(
        text(
            """
            INSERT INTO user_account (id, email, password_hash, is_fake)
            VALUES (CAST(:id AS uuid), :email, :password_hash, TRUE)
            """
        ),
        {"id": user_id, "email": user["email"], "password_hash": password_hash},
    )
    db.execute(
        text(
            """
            INSERT INTO profiles (
              id, email, first_name, last_name, date_of_birth, gender, interested_in,
              bio, occupation, location_city, location_state, interests, relationship_goals
            )
            VALUES (
              CAST(:id AS uuid), :email, :first_name, :last_name, :date_of_birth,
              CAST(:gender AS gender_type), CAST(:interested_in AS gender_type[]),
              :bio, :occupation, :location_city, :location_state, :interests,
              CAST(:relationship_goals AS relationship_goal[])
            )
            """
        ),
        {
            "id": user_id,
            "email": user["email"],
            "first_name": user["first_name"],
            "last_name": user["last_name"],
            "date_of_birth": user["date_of_birth"],
            "gender": user["gender"],
            "interested_in": user["interested_in"],
            "bio": user["bio"],
            "occupation": user["occupation"],
            "location_city": user["location_city"],
            "location_state": user["location_state"],
            "interests": user["interests"],
            "relationship_goals": user["relationship_goals"],
        },
    )
    db.execute(
        text("INSERT INTO user_stats (user_id) VALUES (CAST(:id AS uuid)) ON CONFLICT (user_id) DO NOTHING"),
        {"id": user_id},
    )
    db.execute(
        text(
            """
            INSERT INTO profile_photos (user_id, photo_url, is_primary, order_index)
            VALUES (CAST(:id AS uuid), :photo_url, TRUE, 0)
            """
        ),
        {"id": user_id, "photo_url": user["photo_url"]},
    )
    return user_id


def generate_fake_users(db, *, count: int, female_ratio: float = 0.7, seed: int | None = None, today: date | None = None) -> dict[str, Any]:
    count = max(0, min(MAX_FAKE_USERS_PER_RUN, int(count)))
    female_ratio = max(0.0, min(1.0, float(female_ratio)))
    rng = random.Random(seed)
    today = today or date.today()
    password_hash = hash_password(FAKE_USER_PASSWORD)
    n_female = int(round(count * female_ratio))

    created_ids: list[str] = []
    for i in range(count):
        user = build_fake_user(rng, is_female=i < n_female, today=today)
        created_ids.append(_insert_fake_user(db, user, password_hash))
    db.commit()
    return {"created": len(created_ids), "female": n_female, "male": count - n_female, "user_ids": created_ids}


def cleanup_fake_users(db) -> int:
    res = db.execute(text("DELETE FROM user_account WHERE is_fake = TRUE"))
    db.commit()
    return int(res.rowcount or 0)


def backfill_profile_photos(db, *, limit: int = DEFAULT_BACKFILL_LIMIT) -> dict[str, int]:
    limit = max(1, min(MAX_BACKFILL_LIMIT, int(limit or DEFAULT_BACKFILL_LIMIT)))
    rows = db.execute(
        text(
            """
            SELECT p.id::text AS id, p.gender::text AS gender
            FROM profiles p
            WHERE NOT EXISTS (SELECT 1 FROM profile_photos ph WHERE ph.user_id = p.id)
            ORDER BY p.created_at
            LIMIT :limit
            """
        ),
        {"limit": limit},
    ).mappings().all()

    added = 0
    for i, row in enumerate(rows):
        db.execute(
            text(
                """
                INSERT INTO profile_photos (user_id, photo_url, is_primary, order_index)
                VALUES (CAST(:user_id AS uuid), :photo_url, TRUE, 0)
                """
            ),
            {"user_id": row["id"], "photo_url": photo_url_for(row.get("gender"), i)},
        )
        added += 1
    db.commit()
    return {"added": added, "limit": limit}
