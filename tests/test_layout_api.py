import pytest

from delve.routes import layout_api


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.get_json() == {"status": "ok"}


def test_post_layout_is_deterministic(client):
    body = {"seed": "abc123", "goals": [[150, 0, 150]]}
    r1 = client.post("/api/layout", json=body)
    r2 = client.post("/api/layout", json=body)
    assert r1.status_code == 200, r1.data
    a, b = r1.get_json(), r2.get_json()
    assert a["seed"] == "abc123"
    assert a["points"] == b["points"]
    assert a["rooms"] == b["rooms"]


def test_post_layout_generates_seed_when_missing(client):
    r = client.post("/api/layout", json={})
    assert r.status_code == 200
    seed = r.get_json()["seed"]
    assert isinstance(seed, str) and len(seed) == 12


def test_post_layout_with_preset_and_camel_case(client):
    r = client.post(
        "/api/layout",
        json={"seed": 5, "preset": "Labyrinth", "graph": {"maxSegments": 20}, "includeRooms": False},
    )
    assert r.status_code == 200, r.data
    data = r.get_json()
    assert data["rooms"] == []
    assert len(data["segments"]) <= 20
    assert data["config"]["graph"]["base_unit"] == 12


@pytest.mark.parametrize(
    "body",
    [
        {"graph": {"spur_count": [5, 1]}},
        {"graph": {"bogus": 1}},
        {"rooms": {"strategy": "Hexagonal"}},
        {"preset": "volcano"},
        {"seed": True},
        {"start": [1, 2]},
    ],
)
def test_post_layout_bad_config(client, body):
    r = client.post("/api/layout", json=body)
    assert r.status_code == 400
    assert "error" in r.get_json()


def test_post_layout_body_must_be_object(client):
    r = client.post("/api/layout", json=[1, 2, 3])
    assert r.status_code == 400


def test_get_layout_by_seed(client):
    r = client.get("/api/layout/abc123")
    assert r.status_code == 200
    assert r.get_json()["seed"] == "abc123"
    numeric = client.get("/api/layout/42").get_json()
    assert numeric["seed"] == 42


def test_get_layout_uses_cache(client, monkeypatch):
    calls = {"n": 0}
    real = layout_api.assemble_layout

    def counting(config):
        calls["n"] += 1
        return real(config)

    monkeypatch.setattr(layout_api, "assemble_layout", counting)
    a = client.get("/api/layout/cached").get_json()
    b = client.get("/api/layout/cached").get_json()
    assert a["points"] == b["points"]
    assert calls["n"] == 1


def test_cache_can_be_disabled(client, monkeypatch):
    monkeypatch.setenv("DELVE_DISABLE_CACHE", "1")
    calls = {"n": 0}
    real = layout_api.assemble_layout

    def counting(config):
        calls["n"] += 1
        return real(config)

    monkeypatch.setattr(layout_api, "assemble_layout", counting)
    client.get("/api/layout/nocache")
    client.get("/api/layout/nocache")
    assert calls["n"] == 2


def test_cache_is_capped(client):
    for i in range(12):
        assert client.get(f"/api/layout/cap{i}").status_code == 200
    assert len(layout_api._layout_cache) <= 8


def test_rooms_endpoint(client):
    r = client.post("/api/layout/rooms", json={"seed": 7, "strategy": "radial", "rings": 1, "roomsPerRing": 4})
    assert r.status_code == 200, r.data
    data = r.get_json()
    assert data["seed"] == 7
    assert data["strategy"] == "Radial"
    assert 1 <= len(data["rooms"]) <= 5
    assert data["metrics"]["rooms_placed"] == len(data["rooms"])


def test_rooms_endpoint_rejects_unknown_strategy(client):
    r = client.post("/api/layout/rooms", json={"strategy": "Hexagonal"})
    assert r.status_code == 400


def test_seed_endpoint(client):
    r = client.post("/api/layout/seed", json={"seed": "abc"})
    assert r.get_json() == {"seed": "abc", "state": 18290}
    digits = client.post("/api/layout/seed", json={"seed": "0"}).get_json()
    assert digits == {"seed": 0, "state": 1}
    fresh = client.post("/api/layout/seed").get_json()
    assert len(fresh["seed"]) == 12 and fresh["state"] > 0


def test_strategies_and_presets(client):
    strategies = client.get("/api/layout/strategies").get_json()["strategies"]
    assert strategies == ["Grid", "Poisson", "BSP", "Organic", "Radial"]
    presets = client.get("/api/layout/presets").get_json()["presets"]
    assert "labyrinth" in presets and presets["tower"]["allow_down"] is False


def test_json_keys_keep_insertion_order(test_app, client):
    assert test_app.json.sort_keys is False
    r = client.get("/api/layout/ordered")
    keys = list(r.get_json().keys())
    assert keys[:2] == ["points", "segments"]
