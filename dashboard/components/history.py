"""Delivery history view: active requests first, then past ones."""
from __future__ import annotations

from typing import Sequence

import pandas as pd
import streamlit as st

from dashboard.state import _clear_form_widgets, _rerun_app, _set_view_param
from deliverymaster.app_state import DeliveryApp
from deliverymaster.pricing import format_brl
from deliverymaster.quote_service import Delivery

__all__ = ["history_frame", "render_history"]

HISTORY_COLUMNS = ["Pedido", "Data", "Status", "Pontos", "Distância (km)", "Valor"]


def history_frame(deliveries: Sequence[Delivery]) -> pd.DataFrame:
    """Tabulate ``deliveries`` for display, keeping their order."""

    rows = [
        {
            "Pedido": delivery.id,
            "Data": delivery.created_at.strftime("%d/%m/%Y %H:%M"),
            "Status": delivery.status.label,
            "Pontos": len(delivery.addresses),
            "Distância (km)": delivery.result.distancia_km,
            "Valor": format_brl(delivery.result.preco_estimado),
        }
        for delivery in deliveries
    ]
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)


def _render_active(app: DeliveryApp, delivery: Delivery) -> None:
    with st.container(border=True):
        cols = st.columns([4, 1])
        cols[0].markdown(
            f"**{delivery.id}** · {delivery.created_at:%d/%m/%Y %H:%M} · "
            f"{delivery.status.label}\n\n"
            f"Destinos: {len(delivery.addresses)} pontos · "
            f"Distância: {delivery.result.distancia_km:g} km · "
            f"{format_brl(delivery.result.preco_estimado)}"
        )
        if cols[1].button("Cancelar", key=f"cancel_{delivery.id}"):
            app.cancel_delivery(delivery.id)
            _rerun_app()


def _start_new_request(app: DeliveryApp) -> None:
    app.new_request()
    _clear_form_widgets()
    _set_view_param("form")
    _rerun_app()


def render_history(app: DeliveryApp) -> None:
    if app.last_whatsapp_url:
        st.success("Pedido registrado. Envie a mensagem para concluir a solicitação.")
        st.link_button("Abrir WhatsApp", app.last_whatsapp_url, type="primary")

    st.subheader("Entregas ativas")
    active = app.history.active()
    if active:
        for delivery in active:
            _render_active(app, delivery)
    else:
        st.info("Nenhuma entrega ativa.")

    st.subheader("Histórico")
    past = app.history.past()
    if past:
        st.dataframe(history_frame(past), hide_index=True, use_container_width=True)
    else:
        st.info("Nenhuma entrega anterior.")

    back_col, new_col = st.columns(2)
    if back_col.button("Voltar", use_container_width=True):
        _start_new_request(app)
    if new_col.button("Fazer Nova Solicitação", type="primary", use_container_width=True):
        _start_new_request(app)
