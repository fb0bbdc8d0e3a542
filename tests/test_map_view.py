import pytest

from deliverymaster.addresses import Address, AddressList, Coordinates
from deliverymaster.map_view import (
    DEFAULT_CENTER,
    DEFAULT_ZOOM,
    FIT_PADDING_PX,
    FOCUS_ZOOM,
    MAX_FIT_ZOOM,
    Viewport,
    find_swap_target,
    handle_marker_drop,
    project_map,
    project_to_pixels,
    unproject_pixels,
)

A = Coordinates(-3.7300, -38.5200)
B = Coordinates(-3.7500, -38.5000)
C = Coordinates(-3.7800, -38.4800)


def _addresses(*coords):
    return AddressList(
        [Address(id=i + 1, value=f"Stop {i + 1}", coordinates=c) for i, c in enumerate(coords)]
    )


def _pixel_span(points, zoom):
    pixels = [project_to_pixels(p.lat, p.lng, zoom) for p in points]
    xs = [x for x, _ in pixels]
    ys = [y for _, y in pixels]
    return max(xs) - min(xs), max(ys) - min(ys)


def test_empty_map_uses_default_view() -> None:
    plan = project_map(_addresses(None, None))
    assert plan.markers == ()
    assert plan.route == ()
    assert (plan.view.lat, plan.view.lng, plan.view.zoom) == (
        DEFAULT_CENTER.lat,
        DEFAULT_CENTER.lng,
        DEFAULT_ZOOM,
    )


def test_markers_are_numbered_by_list_position() -> None:
    plan = project_map(_addresses(A, None, C))
    assert [(m.address_id, m.label) for m in plan.markers] == [(1, "1"), (3, "3")]
    assert plan.route == (A.as_tuple(), C.as_tuple())


def test_single_marker_has_no_route() -> None:
    plan = project_map(_addresses(A, None))
    assert len(plan.markers) == 1
    assert plan.route == ()


def test_focused_marker_centres_and_zooms() -> None:
    plan = project_map(_addresses(A, B, C), focused_id=2)
    assert plan.view.zoom == FOCUS_ZOOM
    assert (plan.view.lat, plan.view.lng) == (B.lat, B.lng)
    assert [m.focused for m in plan.markers] == [False, True, False]


def test_fit_bounds_uses_largest_zoom_that_keeps_markers_visible() -> None:
    viewport = Viewport(width=640, height=400)
    plan = project_map(_addresses(A, B, C), viewport=viewport)
    zoom = plan.view.zoom
    usable = (viewport.width - 2 * FIT_PADDING_PX, viewport.height - 2 * FIT_PADDING_PX)

    width, height = _pixel_span([A, B, C], zoom)
    assert width <= usable[0] and height <= usable[1]
    assert zoom <= MAX_FIT_ZOOM
    if zoom < MAX_FIT_ZOOM:
        width, height = _pixel_span([A, B, C], zoom + 1)
        assert width > usable[0] or height > usable[1]

    assert min(A.lat, C.lat) < plan.view.lat < max(A.lat, C.lat)
    assert min(A.lng, C.lng) < plan.view.lng < max(A.lng, C.lng)


def test_fit_bounds_caps_zoom_for_close_markers() -> None:
    near = Coordinates(A.lat + 0.00001, A.lng)
    plan = project_map(_addresses(A, near))
    assert plan.view.zoom == MAX_FIT_ZOOM


def _offset(coords, zoom, dx):
    x, y = project_to_pixels(coords.lat, coords.lng, zoom)
    lat, lng = unproject_pixels(x + dx, y, zoom)
    return Coordinates(lat, lng)


def test_drop_within_threshold_targets_nearest_marker() -> None:
    plan = project_map(_addresses(A, B, C))
    drop = _offset(C, plan.view.zoom, 30)
    assert find_swap_target(plan, 1, drop) == 3


def test_drop_beyond_threshold_finds_nothing() -> None:
    plan = project_map(_addresses(A, B, C))
    drop = _offset(C, plan.view.zoom, 80)
    assert find_swap_target(plan, 1, drop) is None


def test_drop_ignores_the_dragged_marker_itself() -> None:
    plan = project_map(_addresses(A, B, C))
    assert find_swap_target(plan, 2, B, threshold_px=1.0) is None


@pytest.mark.parametrize("dx, swapped", [(10, True), (200, False)])
def test_handle_marker_drop_swaps_list_and_renumbers(dx, swapped) -> None:
    addresses = _addresses(A, B, C)
    plan = project_map(addresses)
    drop = _offset(C, plan.view.zoom, dx)

    assert handle_marker_drop(addresses, plan, 1, drop) is swapped

    if swapped:
        assert addresses.ids() == [3, 2, 1]
        renumbered = project_map(addresses)
        assert renumbered.marker_for(1).position == 3
        assert renumbered.marker_for(3).position == 1
    else:
        assert addresses.ids() == [1, 2, 3]


def test_drop_distance_uses_the_zoom_on_screen() -> None:
    plan = project_map(_addresses(A, B))
    drop = _offset(B, plan.view.zoom, 40)

    assert find_swap_target(plan, 1, drop) == 2
    assert find_swap_target(plan, 1, drop, zoom=plan.view.zoom) == 2
    # 40 px at the fitted zoom is 2560 px once the user zooms in six levels.
    assert find_swap_target(plan, 1, drop, zoom=plan.view.zoom + 6) is None


def test_drop_far_away_at_fitted_zoom_swaps_after_zooming_out() -> None:
    plan = project_map(_addresses(A, B))
    drop = _offset(B, plan.view.zoom, 160)

    assert find_swap_target(plan, 1, drop) is None
    assert find_swap_target(plan, 1, drop, zoom=plan.view.zoom - 2) == 2


def test_handle_marker_drop_honours_zoom() -> None:
    addresses = _addresses(A, B)
    plan = project_map(addresses)
    drop = _offset(B, plan.view.zoom, 40)

    assert handle_marker_drop(addresses, plan, 1, drop, zoom=plan.view.zoom + 6) is False
    assert addresses.ids() == [1, 2]
    assert handle_marker_drop(addresses, plan, 1, drop) is True
    assert addresses.ids() == [2, 1]
