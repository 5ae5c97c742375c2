import pytest

from delve.layout.config import PRESETS, GraphConfig, LayoutConfig, RoomConfig, ScaleRange
from delve.layout.errors import ConfigError
from delve.layout.geometry import Bounds


def test_defaults_validate():
    GraphConfig().validate()
    RoomConfig().validate()
    LayoutConfig().validate()


def test_camel_case_and_min_max_mapping():
    cfg = GraphConfig.from_dict({"spurCount": {"min": 1, "max": 2}, "maxSegments": 30, "allowDown": False})
    assert cfg.spur_count == (1, 2)
    assert cfg.max_segments == 30
    assert cfg.allow_down is False


def test_unknown_option_rejected():
    with pytest.raises(ConfigError):
        GraphConfig.from_dict({"spur_cuont": [1, 2]})
    with pytest.raises(ConfigError):
        LayoutConfig.from_dict({"colour": "red"})


@pytest.mark.parametrize(
    "opts",
    [
        {"spur_count": [5, 1]},
        {"step_length": [0, 3]},
        {"vertical_chance": 1.5},
        {"goal_bias": -0.1},
        {"base_unit": 0},
        {"max_segments_per_path": 0},
        {"max_overlap_retries": 0},
        {"spur_count": {"min": 1}},
        {"loop_count": ["a", "b"]},
        {"bounds": {"min": [10, 0, 10], "max": [0, 0, 0]}},
    ],
)
def test_invalid_graph_options(opts):
    with pytest.raises(ConfigError):
        GraphConfig.from_dict(opts)


def test_config_error_is_value_error():
    with pytest.raises(ValueError):
        GraphConfig(spur_count=(3, 1)).validate()


def test_bounds_forms():
    a = GraphConfig.from_dict({"bounds": {"min": [-60, 0, -60], "max": [60, 0, 60]}})
    b = GraphConfig.from_dict({"bounds": {"x": [-60, 60], "y": [0, 0], "z": [-60, 60]}})
    assert a.bounds == b.bounds == Bounds((-60.0, 0.0, -60.0), (60.0, 0.0, 60.0))


def test_start_outside_bounds_rejected():
    graph = GraphConfig(bounds=Bounds((0, 0, 0), (100, 0, 100)))
    with pytest.raises(ConfigError):
        LayoutConfig(graph=graph, start=(-15.0, 0.0, 0.0)).validate()


def test_presets_are_valid_and_case_insensitive():
    assert set(PRESETS) == {"dungeon", "cavern", "tower", "mine", "labyrinth", "station", "cathedral", "bunker"}
    for cfg in PRESETS.values():
        cfg.validate()
    tower = GraphConfig.from_preset("Tower", seed="abc")
    assert tower.allow_down is False and tower.seed == "abc"
    with pytest.raises(ConfigError):
        GraphConfig.from_preset("volcano")


def test_layout_preset_with_overrides():
    cfg = LayoutConfig.from_dict({"preset": "mine", "graph": {"max_segments": 12}})
    assert cfg.graph.base_unit == 10
    assert cfg.graph.allow_up is False
    assert cfg.graph.max_segments == 12


def test_room_config_checks():
    with pytest.raises(ConfigError):
        RoomConfig(strategy="Hexagonal").validate()
    with pytest.raises(ConfigError):
        RoomConfig(connection_method="Mesh").validate()
    with pytest.raises(ConfigError):
        # 1 unit of 2 is narrower than a 4 wide door
        RoomConfig(base_unit=2, scale_range=ScaleRange(1, 1, 1, 1), min_door_size=4).validate()
    assert RoomConfig(strategy="radial").validate().strategy == "radial"


def test_scale_range_parsing():
    cfg = RoomConfig.from_dict({"scaleRange": {"min": 2, "max": 3}})
    assert cfg.scale_range == ScaleRange(2, 3, 2, 3)
    cfg = RoomConfig.from_dict({"scale_range": [1, 4]})
    assert cfg.scale_range == ScaleRange(1, 4, 1, 4)


def test_ring_spacing_defaults_to_max_hop():
    cfg = RoomConfig(scale_range=ScaleRange(2, 5, 2, 4), base_unit=15, min_door_size=4)
    reach = 5 * 15
    assert cfg.effective_ring_spacing == pytest.approx((reach ** 2 + (reach - 4) ** 2) ** 0.5)
    assert RoomConfig(ring_spacing=40).effective_ring_spacing == 40


def test_round_trip_dicts():
    graph = GraphConfig(seed="abc123", spur_count=(1, 3), bounds=Bounds((-100, -50, -100), (100, 50, 100)))
    assert GraphConfig.from_dict(graph.to_dict()) == graph
    rooms = RoomConfig(strategy="BSP", origin=(15.0, 0.0, 15.0))
    assert RoomConfig.from_dict(rooms.to_dict()) == rooms
    layout = LayoutConfig(graph=graph, rooms=rooms, seed=7, goals=[(90.0, 0.0, 0.0)], include_rooms=False)
    assert LayoutConfig.from_dict(layout.to_dict()) == layout
