import random
from datetime import date

from matchtime.services import seeding


class FakeDB:
    def __init__(self):
        self.calls = []
        self.commits = 0

    def execute(self, stmt, params=None):
        self.calls.append((str(stmt), params))

    def commit(self):
        self.commits += 1


def test_build_fake_user_is_adult_and_marked_with_domain():
    today = date(2026, 6, 1)
    user = seeding.build_fake_user(random.Random(1), is_female=True, today=today)
    assert user["gender"] == "female"
    assert user["interested_in"] == ["male"]
    assert user["email"].endswith("@matchtime.com")
    assert 20 <= (today - user["date_of_birth"]).days // 365 <= 41
    assert len(user["interests"]) == 3
    assert user["photo_url"] in seeding.FEMALE_PHOTO_URLS


def test_generate_fake_users_respects_ratio_and_cap(monkeypatch):
    monkeypatch.setattr(seeding, "hash_password", lambda password: "hashed")
    db = FakeDB()
    out = seeding.generate_fake_users(db, count=10, female_ratio=0.7, seed=3, today=date(2026, 6, 1))
    assert (out["created"], out["female"], out["male"]) == (10, 7, 3)
    assert db.commits == 1

    account_inserts = [params for sql, params in db.calls if "INSERT INTO user_account" in sql]
    assert len(account_inserts) == 10
    assert all(p["password_hash"] == "hashed" for p in account_inserts)

    db = FakeDB()
    out = seeding.generate_fake_users(db, count=500, seed=3)
    assert out["created"] == seeding.MAX_FAKE_USERS_PER_RUN


def test_photo_url_for_cycles_by_gender():
    assert seeding.photo_url_for("male", 0) == seeding.MALE_PHOTO_URLS[0]
    assert seeding.photo_url_for("female", len(seeding.FEMALE_PHOTO_URLS)) == seeding.FEMALE_PHOTO_URLS[0]
    assert seeding.photo_url_for(None, 1) == seeding.FEMALE_PHOTO_URLS[1]
