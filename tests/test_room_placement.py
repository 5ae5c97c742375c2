import pytest

from delve.layout.checks import analyze_rooms
from delve.layout.config import RoomConfig, ScaleRange
from delve.layout.errors import ConfigError
from delve.layout.geometry import horizontal_distance
from delve.layout.rng import DeterministicRNG
from delve.layout.rooms import STRATEGIES, RoomPlacer, adjacent, get_strategy, place_rooms

SEEDS = ["abc123", "abc124", 7, 42, 292372]


def _pairs(rooms):
    return {(min(r.index, c), max(r.index, c)) for r in rooms for c in r.connections}


@pytest.mark.parametrize("strategy", list(STRATEGIES))
@pytest.mark.parametrize("seed", SEEDS)
def test_rooms_never_overlap_and_doors_fit(strategy, seed):
    cfg = RoomConfig(strategy=strategy, seed=seed)
    rooms = place_rooms(cfg)
    assert rooms, "at least the root room is placed"
    problems = analyze_rooms(rooms, cfg)
    assert not problems, f"{strategy}/{seed}: {problems}"


@pytest.mark.parametrize("strategy", list(STRATEGIES))
def test_tree_links_follow_parents(strategy):
    rooms = place_rooms(RoomConfig(strategy=strategy, seed="tree"))
    assert rooms[0].parent_id is None and rooms[0].depth == 0
    for room in rooms[1:]:
        parent = rooms[room.parent_id]
        assert room.index in parent.connections
        assert room.parent_id in room.connections
        assert room.depth == parent.depth + 1
    assert len(_pairs(rooms)) == len(rooms) - 1


def test_scales_within_range():
    cfg = RoomConfig(seed=11, scale_range=ScaleRange(2, 3, 1, 2), max_rooms=15)
    for room in place_rooms(cfg):
        sx, sy, sz = room.scale
        assert 2 <= sx <= 3 and 2 <= sz <= 3 and 1 <= sy <= 2


def test_root_room_sits_on_origin():
    rooms = place_rooms(RoomConfig(seed=3, origin=(30.0, 0.0, -15.0)))
    assert rooms[0].position == (30.0, 0.0, -15.0)


def test_single_room_cap():
    rooms = place_rooms(RoomConfig(seed=3, max_rooms=1))
    assert len(rooms) == 1


@pytest.mark.parametrize("strategy", ["BSP", "Organic", "Radial"])
def test_same_seed_same_rooms(strategy):
    a = place_rooms(RoomConfig(strategy=strategy, seed="repeat"))
    b = place_rooms(RoomConfig(strategy=strategy, seed="repeat"))
    assert [r.to_dict() for r in a] == [r.to_dict() for r in b]


@pytest.mark.parametrize("seed", SEEDS)
def test_radial_rings_stay_within_spacing(seed):
    cfg = RoomConfig(strategy="Radial", rings=2, rooms_per_ring=6, seed=seed)
    placer = RoomPlacer(cfg)
    rooms = placer.generate()
    assert 1 <= len(rooms) <= 13
    origin = rooms[0].position
    spacing = cfg.effective_ring_spacing
    for room in rooms[1:]:
        assert 1 <= room.depth <= 2
        assert horizontal_distance(room.position, origin) <= room.depth * spacing + 1e-6
        if room.depth == 1:
            assert room.parent_id == 0
    ring_one = [r for r in rooms if r.depth == 1]
    assert len(ring_one) <= 6
    assert placer.metrics["rings_closed_early"] >= 0


def test_radial_closes_unfillable_ring():
    # a tight spacing leaves most candidates outside the ring radius
    cfg = RoomConfig(strategy="Radial", rings=2, rooms_per_ring=6, ring_spacing=40, max_attempts=5, seed=1)
    placer = RoomPlacer(cfg)
    rooms = placer.generate()
    assert len(rooms) < 13
    assert placer.metrics["rings_closed_early"] >= 1
    for room in rooms[1:]:
        assert horizontal_distance(room.position, rooms[0].position) <= room.depth * 40 + 1e-6


def test_unknown_strategy_rejected():
    with pytest.raises(ConfigError):
        RoomPlacer(RoomConfig(strategy="Hexagonal"))
    with pytest.raises(ConfigError):
        get_strategy("Hexagonal", RoomConfig())


def test_strategy_lookup_is_case_insensitive():
    assert get_strategy("bsp", RoomConfig()).name == "BSP"
    assert RoomPlacer(RoomConfig(strategy="organic", seed=1)).strategy.name == "Organic"


def test_tree_method_adds_no_extra_links():
    placer = RoomPlacer(RoomConfig(strategy="Grid", seed=5, extra_connection_chance=1.0))
    rooms = placer.generate()
    assert placer.metrics["extra_connections"] == 0
    assert len(_pairs(rooms)) == len(rooms) - 1


@pytest.mark.parametrize("seed", SEEDS)
def test_adjacent_method_links_touching_rooms(seed):
    cfg = RoomConfig(strategy="Grid", seed=seed, connection_method="Adjacent", extra_connection_chance=1.0,
                     max_connections=6, max_rooms=20)
    placer = RoomPlacer(cfg)
    rooms = placer.generate()
    pairs = _pairs(rooms)
    tree = {(min(r.index, r.parent_id), max(r.index, r.parent_id)) for r in rooms if r.parent_id is not None}
    extra = pairs - tree
    assert len(extra) == placer.metrics["extra_connections"]
    for a, b in extra:
        assert adjacent(rooms[a], rooms[b], cfg)
    for room in rooms:
        for c in room.connections:
            assert room.index in rooms[c].connections


def test_shared_rng_continues_stream():
    rng = DeterministicRNG("shared")
    place_rooms(RoomConfig(max_rooms=5), rng)
    after_first = rng.draws
    assert after_first > 0
    place_rooms(RoomConfig(max_rooms=5), rng)
    assert rng.draws > after_first
