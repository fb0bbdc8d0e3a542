"""Streamlit form for entering stops and routing options."""
from __future__ import annotations

import streamlit as st

from dashboard.components.maps import render_stop_map
from dashboard.state import FORM_WIDGET_PREFIX, _rerun_app
from deliverymaster.addresses import MIN_STOPS, Address
from deliverymaster.app_state import DeliveryApp
from deliverymaster.pricing import format_brl

__all__ = ["render_delivery_form"]

GEOCODE_POLL_SECONDS = 1.0


def _widget_key(address_id: int, field_name: str) -> str:
    return f"{FORM_WIDGET_PREFIX}{field_name}_{address_id}"


def _on_field_change(app: DeliveryApp, address_id: int, field_name: str) -> None:
    value = st.session_state.get(_widget_key(address_id, field_name), "")
    app.update_address(address_id, field_name, value)


def _stop_label(index: int) -> str:
    return "Ponto de Coleta" if index == 0 else f"Ponto de Entrega {index + 1}"


def _render_stop(app: DeliveryApp, address: Address, index: int) -> None:
    removable = len(app.addresses) > MIN_STOPS
    cols = st.columns([6, 1, 1, 1])
    cols[0].text_input(
        _stop_label(index),
        value=address.value,
        key=_widget_key(address.id, "value"),
        placeholder="Ex: Av. Bezerra de Menezes, 1234" if index == 0 else "Próxima parada...",
        on_change=_on_field_change,
        args=(app, address.id, "value"),
    )
    if cols[1].button("📍", key=f"{FORM_WIDGET_PREFIX}locate_{address.id}", help="Localizar no mapa"):
        app.locate(address.id)
    if index == 1 and cols[2].button(
        "⇅", key=f"{FORM_WIDGET_PREFIX}swap_{address.id}", help="Trocar com Ponto 1"
    ):
        app.swap_first_two()
        _rerun_app()
    if removable and cols[3].button(
        "🗑", key=f"{FORM_WIDGET_PREFIX}remove_{address.id}", help=f"Remover {_stop_label(index)}"
    ):
        app.remove_stop(address.id)
        _rerun_app()

    with st.expander("Complemento e instruções", expanded=False):
        st.text_input(
            "Complemento",
            value=address.complement,
            key=_widget_key(address.id, "complement"),
            on_change=_on_field_change,
            args=(app, address.id, "complement"),
        )
        st.text_area(
            "Instruções",
            value=address.instructions,
            key=_widget_key(address.id, "instructions"),
            on_change=_on_field_change,
            args=(app, address.id, "instructions"),
        )


def _geocode_poller(app: DeliveryApp) -> None:
    if app.tick():
        _rerun_app()


_fragment = getattr(st, "fragment", None)
if _fragment is not None:
    _geocode_poller = _fragment(run_every=GEOCODE_POLL_SECONDS)(_geocode_poller)


def render_delivery_form(app: DeliveryApp) -> None:
    form_col, map_col = st.columns([3, 2])

    with form_col:
        for index, address in enumerate(list(app.addresses)):
            _render_stop(app, address, index)

        option_cols = st.columns(2)
        if app.can_add_stop() and option_cols[0].button("➕ Incluir Novo Endereço"):
            app.add_stop()
            _rerun_app()
        if app.can_optimize():
            optimize = option_cols[1].checkbox(
                "Organizar por menor rota", value=app.options.optimize_route
            )
        else:
            optimize = False
        include_return = st.checkbox(
            "Incluir retorno ao Ponto 1", value=app.options.include_return
        )
        schedule = st.radio(
            "Coleta",
            options=["now", "schedule"],
            format_func=lambda mode: "Agora" if mode == "now" else "Agendar",
            index=0 if app.options.schedule == "now" else 1,
            horizontal=True,
        )
        reference = st.text_input("Referência do pedido", value=app.options.reference)
        app.set_options(
            include_return=include_return,
            optimize_route=optimize,
            schedule=schedule,
            reference=reference,
        )

        st.caption(
            f"Valor mínimo da corrida: {format_brl(app.minimum_price)}. O valor final será calculado."
        )

        if st.button("Calcular Serviço", type="primary", use_container_width=True):
            with st.spinner("Calculando..."):
                result = app.calculate()
            if result is not None:
                _rerun_app()

        if app.error:
            st.error(app.error)

    with map_col:
        if render_stop_map(app):
            _rerun_app()
        _geocode_poller(app)
