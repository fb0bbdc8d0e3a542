"""Derive the map render plan (markers, route line, viewport) from the address list."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from deliverymaster.addresses import Address, AddressList, Coordinates

DEFAULT_CENTER = Coordinates(lat=-3.7319, lng=-38.5267)  # Fortaleza
DEFAULT_ZOOM = 13
FOCUS_ZOOM = 16
MAX_FIT_ZOOM = 16
FIT_PADDING_PX = 50
SWAP_THRESHOLD_PX = 50.0
TILE_SIZE = 256
_MAX_SIN_LAT = 0.9999


@dataclass(frozen=True)
class Viewport:
    width: int = 640
    height: int = 400


@dataclass(frozen=True)
class ViewState:
    lat: float
    lng: float
    zoom: int


@dataclass(frozen=True)
class MapMarker:
    address_id: int
    position: int
    coordinates: Coordinates
    tooltip: str = ""
    focused: bool = False

    @property
    def label(self) -> str:
        return str(self.position)


@dataclass(frozen=True)
class MapPlan:
    markers: Tuple[MapMarker, ...]
    view: ViewState
    route: Tuple[Tuple[float, float], ...] = field(default_factory=tuple)

    def marker_for(self, address_id: int) -> Optional[MapMarker]:
        return next((m for m in self.markers if m.address_id == address_id), None)


def project_to_pixels(lat: float, lng: float, zoom: float) -> Tuple[float, float]:
    """Return Web Mercator world pixel coordinates for ``(lat, lng)`` at ``zoom``."""

    scale = TILE_SIZE * (2 ** zoom)
    sin_lat = min(max(math.sin(math.radians(lat)), -_MAX_SIN_LAT), _MAX_SIN_LAT)
    x = (lng + 180.0) / 360.0 * scale
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * scale
    return x, y


def unproject_pixels(x: float, y: float, zoom: float) -> Tuple[float, float]:
    scale = TILE_SIZE * (2 ** zoom)
    lng = x / scale * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / scale))))
    return lat, lng


def _fit_bounds(
    points: List[Coordinates],
    viewport: Viewport,
    *,
    padding: int = FIT_PADDING_PX,
    max_zoom: int = MAX_FIT_ZOOM,
) -> ViewState:
    usable_w = max(viewport.width - 2 * padding, 1)
    usable_h = max(viewport.height - 2 * padding, 1)

    zoom = 0
    for candidate in range(max_zoom, -1, -1):
        pixels = [project_to_pixels(p.lat, p.lng, candidate) for p in points]
        xs = [px for px, _ in pixels]
        ys = [py for _, py in pixels]
        if max(xs) - min(xs) <= usable_w and max(ys) - min(ys) <= usable_h:
            zoom = candidate
            break

    pixels = [project_to_pixels(p.lat, p.lng, zoom) for p in points]
    xs = [px for px, _ in pixels]
    ys = [py for _, py in pixels]
    centre_lat, centre_lng = unproject_pixels(
        (min(xs) + max(xs)) / 2, (min(ys) + max(ys)) / 2, zoom
    )
    return ViewState(lat=centre_lat, lng=centre_lng, zoom=zoom)


def project_map(
    addresses: Iterable[Address],
    focused_id: Optional[int] = None,
    viewport: Viewport = Viewport(),
) -> MapPlan:
    markers: List[MapMarker] = []
    for index, address in enumerate(addresses):
        if address.coordinates is None:
            continue
        markers.append(
            MapMarker(
                address_id=address.id,
                position=index + 1,
                coordinates=address.coordinates,
                tooltip=address.value,
                focused=address.id == focused_id,
            )
        )

    if not markers:
        view = ViewState(lat=DEFAULT_CENTER.lat, lng=DEFAULT_CENTER.lng, zoom=DEFAULT_ZOOM)
        return MapPlan(markers=(), view=view)

    route: Tuple[Tuple[float, float], ...] = ()
    if len(markers) > 1:
        route = tuple(m.coordinates.as_tuple() for m in markers)

    focused = next((m for m in markers if m.focused), None)
    if focused is not None:
        view = ViewState(
            lat=focused.coordinates.lat, lng=focused.coordinates.lng, zoom=FOCUS_ZOOM
        )
    else:
        view = _fit_bounds([m.coordinates for m in markers], viewport)
    return MapPlan(markers=tuple(markers), view=view, route=route)


def find_swap_target(
    plan: MapPlan,
    dragged_id: int,
    drop: Coordinates,
    *,
    zoom: Optional[float] = None,
    threshold_px: float = SWAP_THRESHOLD_PX,
) -> Optional[int]:
    """Return the marker nearest to ``drop`` on screen, if within ``threshold_px``.

    Distances are measured in screen pixels at ``zoom``, the zoom the map is
    displayed at when the marker is dropped. It defaults to the plan's own
    zoom for callers that cannot read the live map state.
    """

    if zoom is None:
        zoom = plan.view.zoom
    drop_x, drop_y = project_to_pixels(drop.lat, drop.lng, zoom)
    best_id: Optional[int] = None
    best_distance = math.inf
    for marker in plan.markers:
        if marker.address_id == dragged_id:
            continue
        mx, my = project_to_pixels(marker.coordinates.lat, marker.coordinates.lng, zoom)
        distance = math.hypot(mx - drop_x, my - drop_y)
        if distance < best_distance:
            best_distance = distance
            best_id = marker.address_id
    if best_id is not None and best_distance < threshold_px:
        return best_id
    return None


def handle_marker_drop(
    addresses: AddressList,
    plan: MapPlan,
    dragged_id: int,
    drop: Coordinates,
    *,
    zoom: Optional[float] = None,
    threshold_px: float = SWAP_THRESHOLD_PX,
) -> bool:
    """Swap the dragged stop with the one it was dropped on, if any."""

    target = find_swap_target(plan, dragged_id, drop, zoom=zoom, threshold_px=threshold_px)
    if target is None:
        return False
    return addresses.swap(dragged_id, target)


__all__ = [
    "DEFAULT_CENTER",
    "DEFAULT_ZOOM",
    "FIT_PADDING_PX",
    "FOCUS_ZOOM",
    "MAX_FIT_ZOOM",
    "MapMarker",
    "MapPlan",
    "SWAP_THRESHOLD_PX",
    "ViewState",
    "Viewport",
    "find_swap_target",
    "handle_marker_drop",
    "project_map",
    "project_to_pixels",
    "unproject_pixels",
]
