"""Quote result view with payment choice and confirmation."""
from __future__ import annotations

import streamlit as st

from dashboard.state import _rerun_app, _set_view_param
from deliverymaster.app_state import DeliveryApp
from deliverymaster.pricing import format_brl
from deliverymaster.quote_service import PAYMENT_METHODS

__all__ = ["render_results"]


def render_results(app: DeliveryApp) -> None:
    result = app.result
    if result is None:
        app.back_to_form()
        _rerun_app()
        return

    st.subheader("Resumo do Serviço")
    col1, col2, col3 = st.columns(3)
    col1.metric("Distância", f"{result.distancia_km:g} km")
    col2.metric("Tempo estimado", f"{result.tempo_minutos:.0f} min")
    col3.metric("Valor estimado", format_brl(result.preco_estimado))

    if result.rota_mapa_url:
        st.link_button("Visualizar Rota no Mapa", result.rota_mapa_url)

    payment_method = st.radio(
        "Forma de pagamento",
        options=list(PAYMENT_METHODS),
        format_func=lambda key: PAYMENT_METHODS[key],
        index=list(PAYMENT_METHODS).index("pix"),
        horizontal=True,
    )

    back_col, confirm_col = st.columns(2)
    if back_col.button("Voltar", use_container_width=True):
        app.back_to_form()
        _rerun_app()
    if confirm_col.button("Solicitar Serviço", type="primary", use_container_width=True):
        app.confirm(payment_method)
        _set_view_param("history")
        _rerun_app()
