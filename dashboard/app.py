"""Top-level Streamlit app for DeliveryMaster."""
from __future__ import annotations

from typing import Optional

import streamlit as st

from dashboard.components.delivery_form import render_delivery_form
from dashboard.components.history import render_history
from dashboard.components.results import render_results
from dashboard.state import _rerun_app, _set_view_param, get_delivery_app

__all__ = ["APP_VIEWS", "render_delivery_app"]

APP_VIEWS = {
    "form": render_delivery_form,
    "results": render_results,
    "history": render_history,
}


def _render_header(pending: int) -> bool:
    title_col, button_col = st.columns([4, 1])
    title_col.markdown("## :red[DELIVERY]MASTER")
    label = "Minha página" if not pending else f"Minha página ({pending})"
    return button_col.button(label, use_container_width=True)


def render_delivery_app(db_path: Optional[str] = None) -> None:
    app = get_delivery_app(db_path)

    if _render_header(app.pending_count()):
        app.show_history()
        _set_view_param("history")
        _rerun_app()

    render = APP_VIEWS.get(app.view, render_delivery_form)
    render(app)

    st.caption("© DELIVERYMASTER FORTALEZA. Todos os direitos reservados.")
