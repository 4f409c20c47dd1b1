from datetime import date

from matchtime import repo
from matchtime.services import notifications
from matchtime.services.discovery import DiscoveryFilters

ALICE = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
BONGANI = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"
MATCH_ID = "33333333-3333-3333-3333-333333333333"
CONVERSATION_ID = "44444444-4444-4444-4444-444444444444"
DAY = date(2026, 6, 1)


class FakeResult:
    def __init__(self, row=None, rows=None):
        self.row = row
        self.rows = rows or []

    def mappings(self):
        return self

    def first(self):
        return self.row

    def all(self):
        return self.rows


class FakeSession:
    """Answers each statement from ``responder(sql, params)`` and records every call."""

    def __init__(self, responder):
        self.responder = responder
        self.calls = []
        self.commits = 0
        self.rollbacks = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, stmt, params=None):
        sql = str(stmt)
        self.calls.append((sql, params or {}))
        return self.responder(sql, params or {})

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def stat_updates(self, column):
        return [
            (params["user_id"], params["amount"])
            for sql, params in self.calls
            if "UPDATE user_stats" in sql and f"SET {column} =" in sql
        ]


def _swipe_responder(reciprocal: bool, duplicate: bool = False):
    names = {ALICE: "Alice", BONGANI: "Bongani"}

    def respond(sql, params):
        if "INSERT INTO swipes" in sql:
            return FakeResult(None if duplicate else {"id": "s1", "created_at": "2026-06-01T09:00:00"})
        if "SELECT first_name FROM profiles" in sql:
            return FakeResult({"first_name": names[params["id"]]})
        if "SELECT 1 FROM swipes" in sql:
            return FakeResult((1,) if reciprocal else None)
        if "INSERT INTO matches" in sql:
            return FakeResult({"id": MATCH_ID, "created_at": "2026-06-01T09:00:00"})
        if "FROM conversations WHERE match_id" in sql:
            return FakeResult({"id": CONVERSATION_ID})
        return FakeResult()

    return respond


def _install(monkeypatch, session):
    published = []
    monkeypatch.setattr(repo, "SessionLocal", lambda: session)
    monkeypatch.setattr(notifications, "publish_to_user", lambda user_id, event_type, payload: published.append((user_id, payload["type"])))
    return published


def test_reciprocal_like_creates_ordered_match_and_notifies_both(monkeypatch):
    session = FakeSession(_swipe_responder(reciprocal=True))
    published = _install(monkeypatch, session)

    result = repo.record_swipe(BONGANI, ALICE, "like", day=DAY)

    assert result["match"]["user1_id"] == ALICE
    assert result["match"]["user2_id"] == BONGANI
    assert result["match"]["conversation_id"] == CONVERSATION_ID
    match_insert = next(params for sql, params in session.calls if "INSERT INTO matches" in sql)
    assert (match_insert["user1_id"], match_insert["user2_id"]) == (ALICE, BONGANI)
    assert any("INSERT INTO conversations" in sql for sql, _ in session.calls)

    assert sorted(session.stat_updates("total_matches")) == [(ALICE, 1), (BONGANI, 1)]
    assert session.stat_updates("likes_given") == [(BONGANI, 1)]
    assert session.stat_updates("likes_received") == [(ALICE, 1)]

    assert [n["type"] for n in result["notifications"]] == ["match", "match"]
    assert result["notifications"][0]["message"] == "You and Alice liked each other."
    assert sorted(published) == [(ALICE, "match"), (BONGANI, "match")]
    assert session.commits == 1


def test_one_sided_super_like_spends_bonus_and_notifies_target(monkeypatch):
    session = FakeSession(_swipe_responder(reciprocal=False))
    published = _install(monkeypatch, session)

    result = repo.record_swipe(BONGANI, ALICE, "super_like", day=DAY, use_bonus_super_like=True)

    assert result["match"] is None
    assert not any("INSERT INTO matches" in sql for sql, _ in session.calls)
    limits = next(params for sql, params in session.calls if "INSERT INTO daily_limits" in sql)
    assert limits["super_likes"] == 0
    assert session.stat_updates("bonus_super_likes") == [(BONGANI, -1)]
    assert session.stat_updates("super_likes_received") == [(ALICE, 1)]
    assert [n["type"] for n in result["notifications"]] == ["super_like"]
    assert result["notifications"][0]["message"] == "Bongani super liked you."
    assert published == [(ALICE, "super_like")]


def test_pass_skips_match_lookup_and_duplicate_swipe_rolls_back(monkeypatch):
    session = FakeSession(_swipe_responder(reciprocal=True))
    _install(monkeypatch, session)
    result = repo.record_swipe(BONGANI, ALICE, "pass", day=DAY)
    assert result["match"] is None
    assert not any("SELECT 1 FROM swipes" in sql for sql, _ in session.calls)
    assert session.stat_updates("total_matches") == []

    session = FakeSession(_swipe_responder(reciprocal=True, duplicate=True))
    _install(monkeypatch, session)
    assert repo.record_swipe(BONGANI, ALICE, "like", day=DAY) is None
    assert session.rollbacks == 1
    assert session.commits == 0


def _discovery_call(monkeypatch, viewer, filters):
    session = FakeSession(lambda sql, params: FakeResult(rows=[]))
    monkeypatch.setattr(repo, "SessionLocal", lambda: session)
    repo.fetch_discovery_candidates(
        viewer,
        dob_earliest=date(1980, 1, 1),
        dob_latest=date(2006, 1, 1),
        limit=200,
        filters=filters,
    )
    return session.calls[0]


def test_discovery_pushes_distance_and_advanced_filters_into_sql(monkeypatch):
    viewer = {"id": ALICE, "gender": "female", "interested_in": ["male"], "location_lat": -15.4, "location_lng": 28.3}
    filters = DiscoveryFilters(
        max_distance=50,
        height_min=170,
        education=["bachelors"],
        interests=["music"],
        religion="christian",
        smoking="never",
    )
    sql, params = _discovery_call(monkeypatch, viewer, filters)

    assert "p.location_lat BETWEEN :lat_min AND :lat_max" in sql
    assert "p.location_lng BETWEEN :lng_min AND :lng_max" in sql
    assert params["lat_min"] < -15.4 < params["lat_max"]
    assert params["lng_min"] < 28.3 < params["lng_max"]
    assert "p.height_cm >= :height_min" in sql and params["height_min"] == 170
    assert "lower(p.education::text) = ANY" in sql and params["education"] == ["bachelors"]
    assert "unnest(p.interests)" in sql and params["interests"] == ["music"]
    assert params["religion"] == "christian"
    assert params["smoking"] == "never"
    assert "drinking" not in params
    # the filters narrow the pool before it is cut to the limit
    assert sql.index(":lat_min") < sql.index("LIMIT :limit")


def test_discovery_without_viewer_coordinates_has_no_box(monkeypatch):
    viewer = {"id": ALICE, "gender": "female", "interested_in": []}
    sql, params = _discovery_call(monkeypatch, viewer, DiscoveryFilters())
    assert ":lat_min" not in sql
    assert "lat_min" not in params
    assert ":height_min" not in sql


def test_password_reset_sets_password_and_revokes_sessions(monkeypatch):
    def respond(sql, params):
        if "UPDATE password_reset_token" in sql:
            return FakeResult({"user_id": ALICE} if params["token_hash"] == "live" else None)
        return FakeResult()

    session = FakeSession(respond)
    monkeypatch.setattr(repo, "SessionLocal", lambda: session)

    assert repo.consume_password_reset_token("live", "new-hash") == ALICE
    token_sql = session.calls[0][0]
    assert "used_at IS NULL" in token_sql and "expires_at > NOW()" in token_sql
    password_update = next(params for sql, params in session.calls if "UPDATE user_account SET password_hash" in sql)
    assert password_update == {"id": ALICE, "password_hash": "new-hash"}
    assert any("UPDATE refresh_token SET revoked_at=NOW()" in sql for sql, _ in session.calls)
    assert session.commits == 1

    session = FakeSession(respond)
    monkeypatch.setattr(repo, "SessionLocal", lambda: session)
    assert repo.consume_password_reset_token("spent", "new-hash") is None
    assert len(session.calls) == 1
    assert session.rollbacks == 1
