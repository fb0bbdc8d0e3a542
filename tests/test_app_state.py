from deliverymaster.addresses import Coordinates
from deliverymaster.app_state import DeliveryApp
from deliverymaster.geocoding import GeocodeError
from deliverymaster.quote_service import DeliveryStatus
from deliverymaster.repo import HistoryStore

from conftest import DummyLLMClient, FakeClock, RecordingGeocoder

QUOTE_REPLY = {
    "distancia_km": 15,
    "tempo_minutos": 30,
    "preco_estimado": 19.25,
    "rota_mapa_url": "https://maps.google.com/route",
}


def _app(store, *, replies=(), geocoder=None, clock=None, opened=None):
    return DeliveryApp(
        store,
        llm_client=DummyLLMClient(*replies),
        geocoder=geocoder or RecordingGeocoder(),
        opener=opened.append if opened is not None else None,
        clock=clock or FakeClock(),
        minimum_price=6.0,
    )


def _fill(app, *values):
    while len(app.addresses) < len(values):
        app.addresses.add()
    for address_id, value in zip(app.addresses.ids(), values):
        app.update_address(address_id, "value", value)


def test_new_app_starts_on_empty_form(store) -> None:
    app = _app(store)
    assert app.view == "form"
    assert len(app.addresses) == 2
    assert app.pending_count() == 0


def test_stop_count_never_drops_below_two(store) -> None:
    app = _app(store)
    first = app.addresses.ids()[0]
    assert app.remove_stop(first) is False
    assert len(app.addresses) == 2
    assert "pelo menos 2" in app.error


def test_add_stop_requires_second_stop_text(store) -> None:
    app = _app(store)
    assert app.add_stop() is None
    _fill(app, "A", "B")
    new_id = app.add_stop()
    assert new_id is not None
    assert app.can_optimize()
    assert app.remove_stop(new_id)
    assert not app.can_optimize()


def test_swap_first_two(store) -> None:
    app = _app(store)
    _fill(app, "A", "B")
    app.swap_first_two()
    assert [a.value for a in app.addresses] == ["B", "A"]


def test_typing_triggers_single_debounced_geocode(store) -> None:
    clock = FakeClock()
    geocoder = RecordingGeocoder(lambda texts: [Coordinates(1.0, 1.0)] * len(texts))
    app = _app(store, geocoder=geocoder, clock=clock)

    _fill(app, "Rua A", "Rua B")
    clock.advance(0.5)
    app.update_address(app.addresses.ids()[1], "value", "Rua B, 100")
    clock.advance(0.6)
    assert app.tick() == 0
    assert geocoder.calls == []

    clock.advance(0.5)
    assert app.tick() == 2
    assert geocoder.calls == [["Rua A", "Rua B, 100"]]
    assert len(app.map_plan().markers) == 2


def test_edit_during_request_discards_stale_reply(store) -> None:
    app = _app(store)
    _fill(app, "Old text", "Other")
    first = app.addresses.ids()[0]

    batch = app.geocoder.begin_batch()
    app.update_address(first, "value", "New text")
    app.geocoder.apply_batch(batch, [Coordinates(1.0, 1.0), Coordinates(2.0, 2.0)])

    assert app.addresses.get(first).coordinates is None
    assert app.geocoder.pending() == [first]


def test_locate_focuses_map_on_success(store) -> None:
    geocoder = RecordingGeocoder([Coordinates(-3.7, -38.5)])
    app = _app(store, geocoder=geocoder)
    _fill(app, "A", "B")
    second = app.addresses.ids()[1]

    assert app.locate(second) == Coordinates(-3.7, -38.5)
    assert app.focused_id == second
    assert app.map_plan().view.zoom == 16


def test_locate_failure_sets_error(store) -> None:
    app = _app(store, geocoder=RecordingGeocoder(error=GeocodeError("offline")))
    _fill(app, "A", "B")
    assert app.locate(app.addresses.ids()[1]) is None
    assert app.error == "Não foi possível localizar o ponto 2."


def test_calculate_validation_error_stays_on_form(store) -> None:
    app = _app(store)
    _fill(app, "A", "")
    assert app.calculate() is None
    assert app.view == "form"
    assert app.error == "Preencha o endereço do ponto 2."


def test_quote_confirm_and_history_survive_restart(conn) -> None:
    opened = []
    app = _app(HistoryStore(conn), replies=[QUOTE_REPLY], opened=opened)
    _fill(app, "Point A", "Point B", "Point C")
    app.set_options(optimize_route=True)

    result = app.calculate()
    assert result.preco_estimado == 19.25
    assert app.view == "results"

    delivery = app.confirm("pix")
    assert app.view == "history"
    assert opened == [app.last_whatsapp_url]
    assert app.pending_count() == 1

    restarted = _app(HistoryStore(conn))
    assert restarted.history.ids() == [delivery.id]
    assert restarted.history.get(delivery.id).status is DeliveryStatus.PENDING

    assert restarted.cancel_delivery(delivery.id)
    assert _app(HistoryStore(conn)).pending_count() == 0


def test_confirm_without_result_returns_to_form(store) -> None:
    app = _app(store)
    app.view = "results"
    assert app.confirm() is None
    assert app.view == "form"


def test_new_request_resets_form(store) -> None:
    app = _app(store, replies=[QUOTE_REPLY])
    _fill(app, "A", "B", "C")
    app.set_options(include_return=True, reference="REF-1")
    app.calculate()
    app.confirm()

    app.new_request()

    assert app.view == "form"
    assert app.result is None
    assert app.last_whatsapp_url is None
    assert len(app.addresses) == 2
    assert all(not a.value for a in app.addresses)
    assert app.options.include_return is False
    assert app.options.reference == ""
    assert len(app.history) == 1


def test_drop_marker_swaps_stops(store) -> None:
    app = _app(store)
    _fill(app, "A", "B")
    a, b = app.addresses.ids()
    app.addresses.set_coordinates(a, Coordinates(-3.73, -38.52))
    app.addresses.set_coordinates(b, Coordinates(-3.75, -38.50))

    plan = app.map_plan()
    assert app.drop_marker(plan, a, Coordinates(-3.75, -38.50))
    assert app.addresses.ids() == [b, a]


def test_drop_marker_measures_at_the_displayed_zoom(store) -> None:
    app = _app(store)
    _fill(app, "A", "B")
    a, b = app.addresses.ids()
    app.addresses.set_coordinates(a, Coordinates(-3.73, -38.52))
    app.addresses.set_coordinates(b, Coordinates(-3.75, -38.50))
    plan = app.map_plan()
    near_b = Coordinates(-3.7503, -38.5003)

    assert app.drop_marker(plan, a, near_b, zoom=18) is False
    assert app.addresses.ids() == [a, b]
    assert app.drop_marker(plan, a, near_b, zoom=plan.view.zoom) is True
    assert app.addresses.ids() == [b, a]
