import pytest

from page_stitcher.core.capture_plan import (
    CapturePlan,
    SurfaceMeasurements,
    build_plan,
    build_plan_from,
    compute_overlap,
)
from page_stitcher.utils.error_handler import InvalidDimensions


def test_plan_for_800_viewport_over_2000_surface() -> None:
    plan = build_plan(1.0, 1280, 800, 1280, 2000)

    assert plan.overlap == 64
    assert plan.step == 736
    assert plan.stops == (0, 736, 1200)
    assert plan.last_pos_correction == 1472 - 1200


@pytest.mark.parametrize("viewport_height", [1, 7, 12, 100, 599, 800, 1080])
@pytest.mark.parametrize("extra", [0, 1, 63, 500, 3217])
def test_stops_cover_surface_in_order(viewport_height: int, extra: int) -> None:
    surface_height = viewport_height + extra
    plan = build_plan(2.0, 400, viewport_height, 400, surface_height)
    bottom = surface_height - viewport_height

    assert plan.stops[0] == 0
    assert plan.stops[-1] == bottom
    assert all(0 <= s <= bottom for s in plan.stops)
    assert all(a < b for a, b in zip(plan.stops, plan.stops[1:]))
    # every unclamped gap is exactly one step
    assert all(b - a == plan.step for a, b in zip(plan.stops[:-2], plan.stops[1:-1]))


def test_overlap_bounds() -> None:
    assert compute_overlap(800) == 64
    assert compute_overlap(2000) == 64
    assert compute_overlap(500) == 40
    assert compute_overlap(12) == 0


def test_equal_heights_give_single_stop() -> None:
    plan = build_plan(1.0, 1024, 768, 1024, 768)

    assert plan.stops == (0,)
    assert plan.last_pos_correction == 0


def test_evenly_divisible_surface_has_no_duplicate_stop() -> None:
    # step 736, two whole steps past the viewport
    plan = build_plan(1.0, 800, 800, 800, 800 + 2 * 736)

    assert plan.stops == (0, 736, 1472)
    assert len(set(plan.stops)) == len(plan.stops)
    assert plan.last_pos_correction == 0


def test_zero_overlap_viewport() -> None:
    plan = build_plan(1.0, 10, 10, 10, 35)

    assert plan.overlap == 0
    assert plan.step == 10
    assert plan.stops == (0, 10, 20, 25)


def test_build_plan_is_deterministic() -> None:
    first = build_plan(1.5, 390, 844, 390, 9001)
    second = build_plan(1.5, 390, 844, 390, 9001)

    assert first == second
    assert first.stops == second.stops


@pytest.mark.parametrize(
    "args",
    [
        (0, 100, 100, 100, 100),
        (-1.0, 100, 100, 100, 100),
        (float("nan"), 100, 100, 100, 100),
        (1.0, 0, 100, 100, 100),
        (1.0, 100, -5, 100, 100),
        (1.0, 100, 100, 0, 100),
        (1.0, 100, 100, 100, 0),
        (1.0, 100, 100.5, 100, 200),
        (1.0, 100, True, 100, 200),
    ],
)
def test_malformed_inputs_raise(args) -> None:
    with pytest.raises(InvalidDimensions):
        build_plan(*args)


def test_surface_shorter_than_viewport_raises() -> None:
    with pytest.raises(InvalidDimensions) as exc_info:
        build_plan(1.0, 100, 800, 100, 600)

    assert exc_info.value.details["field"] == "surface_height"


def test_clamped_measurements_make_single_tile_plan() -> None:
    measurements = SurfaceMeasurements(2.0, 1280, 800, 900, 600).clamped()

    plan = build_plan_from(measurements)

    assert plan.surface_height == 800
    assert plan.surface_width == 1280
    assert plan.stops == (0,)


def test_header_band_validation() -> None:
    plan = build_plan(1.0, 100, 800, 100, 2000, header_band=100)
    assert plan.header_band == 100

    with pytest.raises(InvalidDimensions):
        build_plan(1.0, 100, 800, 100, 2000, header_band=800)
    with pytest.raises(InvalidDimensions):
        plan.with_header_band(-1)


def test_physical_size_rounds() -> None:
    plan = build_plan(1.25, 333, 500, 333, 1001)

    assert plan.physical_width == round(333 * 1.25)
    assert plan.physical_height == round(1001 * 1.25)


def test_progress_percent_caps_at_99() -> None:
    plan = build_plan(1.0, 100, 800, 100, 2000)

    assert [plan.progress_percent(i) for i in range(3)] == [33, 66, 99]


def test_plan_dict_round_trip_checks_stops() -> None:
    plan = build_plan(2.0, 100, 800, 100, 2000, header_band=30)
    data = plan.to_dict()

    assert CapturePlan.from_dict(data) == plan

    data["stops"] = [0, 700, 1200]
    with pytest.raises(InvalidDimensions):
        CapturePlan.from_dict(data)


def test_measurements_from_dict_missing_key() -> None:
    with pytest.raises(InvalidDimensions) as exc_info:
        SurfaceMeasurements.from_dict({"device_pixel_ratio": 1.0})

    assert exc_info.value.details["field"] == "viewport_width"
