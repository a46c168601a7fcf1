from uuid import uuid4

import pytest

from wayspot.errors import StoreUnavailableError

API = "/api/v1"

REVIEW = {
    "transport_mode": "hitchhiking",
    "safety_rating": 5,
    "effectiveness_rating": 4,
    "overall_rating": 5,
    "wait_time_minutes": 12,
    "comment": "Got a lift in ten minutes",
}

SPOT = {
    "name": "Porto A28 ramp",
    "description": "Long straight before the on-ramp",
    "latitude": 41.18,
    "longitude": -8.65,
    "spot_type": "highway_entrance",
    "transport_modes": ["hitchhiking", "walking"],
}


def register(client, email="ana@example.com"):
    response = client.post(f"{API}/users", json={"email": email, "username": email.split("@")[0]})
    assert response.status_code == 201
    return response.json()["id"]


def as_user(user_id):
    return {"X-User-Id": str(user_id)}


@pytest.fixture
def traveller(client):
    user_id = register(client)
    response = client.post(
        f"{API}/users/me/profile",
        json={"travel_modes": ["hitchhiking", "cycling"], "safety_priority": "medium"},
        headers=as_user(user_id),
    )
    assert response.status_code == 201
    return user_id


def test_review_flow(client, traveller):
    created = client.post(f"{API}/spots", json=SPOT, headers=as_user(traveller))
    assert created.status_code == 201
    spot_id = created.json()["data"]["id"]

    first = client.post(f"{API}/spots/{spot_id}/reviews", json=REVIEW, headers=as_user(traveller))
    assert first.status_code == 201
    assert first.json()["aggregate_stale"] is False
    assert first.json()["data"]["wait_time_minutes"] == 12

    second = client.post(f"{API}/spots/{spot_id}/reviews", json=REVIEW, headers=as_user(traveller))
    assert second.status_code == 409
    error = second.json()["error"]
    assert error["kind"] == "conflict"
    assert error["path"] == f"{API}/spots/{spot_id}/reviews"

    spot = client.get(f"{API}/spots/{spot_id}").json()["data"]
    assert spot["total_reviews"] == 1
    assert spot["overall_rating"] == 5.0
    assert spot["mode_ratings"]["hitchhiking"]["avg_wait_time"] == 12.0
    assert spot["created_by"]["id"] == traveller

    reviews = client.get(f"{API}/spots/{spot_id}/reviews").json()
    assert reviews["pagination"]["count"] == 1

    profile = client.get(f"{API}/users/me/profile", headers=as_user(traveller)).json()["data"]
    assert profile["total_reviews"] == 1
    assert profile["spots_added"] == 1


def test_stale_aggregates_return_202(client, store, traveller, make_spot, monkeypatch):
    spot = make_spot()

    async def unavailable(*args, **kwargs):
        raise StoreUnavailableError("timed out")

    monkeypatch.setattr(store.spots, "recompute_ratings", unavailable)
    response = client.post(f"{API}/spots/{spot.id}/reviews", json=REVIEW, headers=as_user(traveller))

    assert response.status_code == 202
    assert response.json()["aggregate_stale"] is True
    assert response.json()["data"]["spot_id"] == str(spot.id)


class TestDiscovery:
    def test_limit_over_cap(self, client):
        response = client.get(f"{API}/spots", params={"limit": 150})
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "validation_error"

    def test_unknown_transport_mode(self, client):
        response = client.get(f"{API}/spots", params={"transport_modes": "rocket"})
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "validation_error"

    def test_comma_separated_modes(self, client, make_spot):
        make_spot(transport_modes=["cycling"])
        make_spot(transport_modes=["walking"])
        make_spot(transport_modes=["van_life"])

        response = client.get(f"{API}/spots", params={"transport_modes": "cycling,walking"})
        assert response.status_code == 200
        assert response.json()["pagination"]["count"] == 2
        assert response.json()["filters"]["transport_modes"] == ["cycling", "walking"]

    def test_nearby_reports_distance(self, client, make_spot):
        make_spot(latitude=41.15, longitude=-8.61)
        response = client.get(f"{API}/spots/nearby", params={"latitude": 41.16, "longitude": -8.61})
        body = response.json()
        assert response.status_code == 200
        assert body["search_center"]["radius_km"] == 10.0
        assert 1.0 < body["data"][0]["distance_km"] < 1.2

    def test_stored_preferences_fill_the_query(self, client, traveller, make_spot):
        cycling = make_spot(transport_modes=["cycling"], safety_rating=3.0)
        make_spot(transport_modes=["cycling"], safety_rating=2.0)
        make_spot(transport_modes=["van_life"], safety_rating=5.0)

        anonymous = client.get(f"{API}/spots").json()
        assert anonymous["pagination"]["count"] == 3

        personal = client.get(f"{API}/spots", headers=as_user(traveller)).json()
        assert [s["id"] for s in personal["data"]] == [str(cycling.id)]

    def test_explicit_query_beats_preferences(self, client, traveller, make_spot):
        van = make_spot(transport_modes=["van_life"], safety_rating=5.0)
        make_spot(transport_modes=["cycling"], safety_rating=5.0)

        response = client.get(
            f"{API}/spots", params={"transport_modes": "van_life"}, headers=as_user(traveller)
        ).json()
        assert [s["id"] for s in response["data"]] == [str(van.id)]

    def test_unknown_spot(self, client):
        response = client.get(f"{API}/spots/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "not_found"


class TestIdentityAndValidation:
    def test_missing_user_header(self, client):
        response = client.post(f"{API}/spots", json=SPOT)
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "validation_error"

    def test_malformed_user_header(self, client):
        response = client.post(f"{API}/spots", json=SPOT, headers={"X-User-Id": "not-a-uuid"})
        assert response.status_code == 400

    def test_malformed_body(self, client, traveller, make_spot):
        spot = make_spot()
        body = {k: v for k, v in REVIEW.items() if k != "overall_rating"}
        response = client.post(f"{API}/spots/{spot.id}/reviews", json=body, headers=as_user(traveller))
        assert response.status_code == 400
        assert response.json()["error"]["details"]["errors"]

    def test_rating_out_of_scale(self, client, traveller, make_spot):
        spot = make_spot()
        response = client.post(
            f"{API}/spots/{spot.id}/reviews", json=dict(REVIEW, safety_rating=6), headers=as_user(traveller)
        )
        assert response.status_code == 400

    def test_only_creator_edits(self, client, traveller):
        spot_id = client.post(f"{API}/spots", json=SPOT, headers=as_user(traveller)).json()["data"]["id"]
        other = register(client, "bo@example.com")

        response = client.put(f"{API}/spots/{spot_id}", json={"name": "Mine"}, headers=as_user(other))
        assert response.status_code == 403
        assert response.json()["error"]["kind"] == "forbidden"

    def test_primary_mode_conflict(self, client, traveller):
        response = client.put(
            f"{API}/users/me/profile", json={"travel_modes": ["walking"]}, headers=as_user(traveller)
        )
        assert response.status_code == 409


class TestTrust:
    def test_verification_feeds_score_and_badges(self, client, traveller):
        response = client.post(f"{API}/users/me/verify", json={"type": "email"}, headers=as_user(traveller))
        assert response.status_code == 200
        assert response.json()["data"]["email_verified"] is True

        score = client.get(f"{API}/users/{traveller}/trust-score").json()
        assert score["trust_score"] == 15

        badges = client.get(f"{API}/users/{traveller}/badges").json()["data"]
        assert [b["badge_key"] for b in badges] == ["email_verified"]

        # Already held, nothing new
        evaluated = client.post(f"{API}/users/{traveller}/badges/evaluate").json()
        assert evaluated["awarded"] == []

    def test_complete_profile(self, client, traveller):
        client.post(f"{API}/users/me/verify", json={"type": "phone"}, headers=as_user(traveller))
        body = client.get(f"{API}/users/{traveller}/complete-profile").json()

        assert body["trust_score"] == 15
        assert body["is_new_member"] is True
        assert body["badge_counts"]["trust"] == 1
        assert body["profile"]["travel_modes"] == ["hitchhiking", "cycling"]

    def test_trust_score_without_profile(self, client):
        user_id = register(client)
        response = client.get(f"{API}/users/{user_id}/trust-score")
        assert response.status_code == 404


class TestSystem:
    def test_health_endpoints(self, client):
        assert client.get("/live").json() == {"status": "alive"}
        assert client.get("/ready").json() == {"status": "ready"}

    def test_process_time_header(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "X-Process-Time" in response.headers
