"""State and session helpers for the Streamlit delivery app."""
from __future__ import annotations

from typing import Optional

import streamlit as st

from deliverymaster.app_state import DeliveryApp
from deliverymaster.repo import HistoryStore, get_connection

__all__ = [
    "APP_STATE_KEY",
    "FORM_WIDGET_PREFIX",
    "VIEW_PARAM",
    "_clear_form_widgets",
    "_rerun_app",
    "_set_view_param",
    "_view_from_query",
    "get_delivery_app",
]

APP_STATE_KEY = "delivery_app"
FORM_WIDGET_PREFIX = "stop_"
VIEW_PARAM = "view"


def _set_view_param(view: str) -> None:
    """Mirror the current view in the URL so a reload lands on the same page."""

    query_params = getattr(st, "query_params", None)
    if query_params is None:
        st.experimental_set_query_params(**{VIEW_PARAM: view})
        return
    query_params[VIEW_PARAM] = view


def _view_from_query() -> Optional[str]:
    query_params = getattr(st, "query_params", None)
    if query_params is None:
        values = st.experimental_get_query_params().get(VIEW_PARAM) or [None]
        return values[0]
    return query_params.get(VIEW_PARAM)


def _rerun_app() -> None:
    """Start a fresh script run; releases before 1.27 only ship the experimental name."""

    rerun = getattr(st, "rerun", None) or st.experimental_rerun
    rerun()


def _clear_form_widgets() -> None:
    """Drop per-stop widget values so a fresh form does not inherit old text."""

    for key in list(st.session_state.keys()):
        if isinstance(key, str) and key.startswith(FORM_WIDGET_PREFIX):
            del st.session_state[key]


def get_delivery_app(db_path: Optional[str] = None) -> DeliveryApp:
    """Return the session's ``DeliveryApp``, loading history on first use."""

    app: Optional[DeliveryApp] = st.session_state.get(APP_STATE_KEY)
    if app is None:
        store = HistoryStore(get_connection(db_path))
        # The browser opens the WhatsApp link itself; see the history view.
        app = DeliveryApp(store, opener=None)
        st.session_state[APP_STATE_KEY] = app
        if _view_from_query() == "history":
            app.show_history()
    return app
