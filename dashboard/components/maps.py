"""Map components for the delivery form."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pydeck as pdk
import streamlit as st

try:
    import folium
    from streamlit_folium import st_folium
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    folium = None  # type: ignore[assignment]
    st_folium = None  # type: ignore[assignment]

from dashboard.state import _rerun_app
from deliverymaster.addresses import Coordinates
from deliverymaster.app_state import DeliveryApp
from deliverymaster.map_view import MapPlan, Viewport

__all__ = [
    "_build_folium_map",
    "_pin_html",
    "build_stop_deck",
    "render_stop_map",
    "_hex_to_rgb",
    "_marker_rows",
]

MAP_VIEWPORT = Viewport(width=640, height=400)
ROUTE_COLOUR = "#ef4444"
MARKER_COLOUR = "#1e40af"
FOCUSED_COLOUR = "#f59e0b"
PIN_SIZE_PX = 28
_DRAG_SOURCE_KEY = "map_drag_source"
_LAST_CLICK_KEY = "map_last_click"


def _hex_to_rgb(value: str) -> Tuple[int, int, int]:
    """Convert ``value`` (hex string) into an ``(r, g, b)`` tuple."""

    colour = value.strip()
    if not colour.startswith("#"):
        raise ValueError(f"Unsupported colour format: {value}")
    digits = colour.lstrip("#")
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    if len(digits) != 6:
        raise ValueError(f"Unsupported hex colour format: {value}")
    return tuple(int(digits[idx : idx + 2], 16) for idx in (0, 2, 4))  # type: ignore[return-value]


def _marker_rows(plan: MapPlan) -> List[Dict[str, Any]]:
    rows = []
    for marker in plan.markers:
        colour = FOCUSED_COLOUR if marker.focused else MARKER_COLOUR
        rows.append(
            {
                "address_id": marker.address_id,
                "position": [marker.coordinates.lng, marker.coordinates.lat],
                "label": marker.label,
                "tooltip": marker.tooltip,
                "color": [*_hex_to_rgb(colour), 220],
            }
        )
    return rows


def build_stop_deck(plan: MapPlan) -> pdk.Deck:
    """Static pydeck rendering of ``plan``, used when folium is unavailable."""

    rows = _marker_rows(plan)
    layers = []
    if plan.route:
        layers.append(
            pdk.Layer(
                "PathLayer",
                data=[{"path": [[lng, lat] for lat, lng in plan.route]}],
                get_path="path",
                get_color=[*_hex_to_rgb(ROUTE_COLOUR), 200],
                width_min_pixels=4,
            )
        )
    layers.extend(
        [
            pdk.Layer(
                "ScatterplotLayer",
                data=rows,
                get_position="position",
                get_fill_color="color",
                radius_min_pixels=10,
            ),
            pdk.Layer(
                "TextLayer",
                data=rows,
                get_position="position",
                get_text="label",
                get_size=14,
                get_color=[255, 255, 255],
            ),
        ]
    )
    return pdk.Deck(
        map_style=None,
        initial_view_state=pdk.ViewState(
            latitude=plan.view.lat,
            longitude=plan.view.lng,
            zoom=plan.view.zoom,
        ),
        layers=layers,
        tooltip={"text": "{tooltip}"},
    )


def _pin_html(label: str, colour: str) -> str:
    """Round map pin showing the stop's position number."""

    return (
        f'<div class="stop-pin" style="background:{colour};color:#fff;'
        f"width:{PIN_SIZE_PX}px;height:{PIN_SIZE_PX}px;line-height:{PIN_SIZE_PX - 4}px;"
        "border:2px solid #fff;border-radius:50%;text-align:center;"
        f'font-weight:700;box-shadow:0 1px 4px rgba(0,0,0,0.4);">{label}</div>'
    )


def _build_folium_map(plan: MapPlan, drag_source: Optional[int]) -> "folium.Map":
    map_obj = folium.Map(location=[plan.view.lat, plan.view.lng], zoom_start=plan.view.zoom)
    if plan.route:
        folium.PolyLine(
            list(plan.route), color=ROUTE_COLOUR, weight=4, opacity=0.8, dash_array="8, 8"
        ).add_to(map_obj)
    for marker in plan.markers:
        highlighted = marker.focused or marker.address_id == drag_source
        colour = FOCUSED_COLOUR if highlighted else MARKER_COLOUR
        folium.Marker(
            [marker.coordinates.lat, marker.coordinates.lng],
            tooltip=f"{marker.label}. {marker.tooltip}",
            icon=folium.DivIcon(
                html=_pin_html(marker.label, colour),
                icon_size=(PIN_SIZE_PX, PIN_SIZE_PX),
                icon_anchor=(PIN_SIZE_PX // 2, PIN_SIZE_PX // 2),
                class_name="stop-pin-icon",
            ),
        ).add_to(map_obj)
    return map_obj


def _nearest_marker(plan: MapPlan, point: Dict[str, Any]) -> Optional[int]:
    for marker in plan.markers:
        if (
            abs(marker.coordinates.lat - float(point["lat"])) < 1e-9
            and abs(marker.coordinates.lng - float(point["lng"])) < 1e-9
        ):
            return marker.address_id
    return None


def render_stop_map(app: DeliveryApp, *, key: str = "stop_map") -> bool:
    """Render the stop map and apply pick-and-drop swaps.

    Clicking a marker picks it up; the next click on the map drops it, and
    if that point lies within the swap threshold of another marker, measured
    at the zoom currently on screen, the two stops trade places.
    Returns ``True`` when the address order changed.
    """

    plan = app.map_plan(MAP_VIEWPORT)
    if folium is None or st_folium is None:
        st.pydeck_chart(build_stop_deck(plan))
        st.caption("Install 'folium' and 'streamlit-folium' to reorder stops on the map.")
        return False

    drag_source: Optional[int] = st.session_state.get(_DRAG_SOURCE_KEY)
    picked_marker = plan.marker_for(drag_source) if drag_source is not None else None
    if drag_source is not None and picked_marker is None:
        st.session_state.pop(_DRAG_SOURCE_KEY, None)
        drag_source = None
    if picked_marker is not None:
        st.caption(f"Ponto {picked_marker.label} selecionado. Clique no ponto de destino.")

    map_obj = _build_folium_map(plan, drag_source)
    state = st_folium(
        map_obj,
        height=MAP_VIEWPORT.height,
        width=MAP_VIEWPORT.width,
        key=f"{key}_{plan.view.lat:.5f}_{plan.view.lng:.5f}_{plan.view.zoom}",
        returned_objects=["last_object_clicked", "last_clicked", "zoom"],
    )
    if not isinstance(state, dict):
        return False

    clicked_marker = state.get("last_object_clicked")
    clicked_point = state.get("last_clicked")
    signature = (repr(clicked_marker), repr(clicked_point))
    previous = st.session_state.get(_LAST_CLICK_KEY, (repr(None), repr(None)))
    if previous == signature:
        return False
    st.session_state[_LAST_CLICK_KEY] = signature
    marker_changed = previous[0] != signature[0]

    if drag_source is None:
        if marker_changed and clicked_marker:
            picked = _nearest_marker(plan, clicked_marker)
            if picked is not None:
                st.session_state[_DRAG_SOURCE_KEY] = picked
                _rerun_app()
        return False

    target = clicked_marker if marker_changed and clicked_marker else clicked_point
    if not target:
        return False
    st.session_state.pop(_DRAG_SOURCE_KEY, None)
    drop = Coordinates(lat=float(target["lat"]), lng=float(target["lng"]))
    zoom = state.get("zoom")
    return app.drop_marker(
        plan, drag_source, drop, zoom=float(zoom) if zoom is not None else None
    )
