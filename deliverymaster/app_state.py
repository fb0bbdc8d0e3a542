"""Application state shared by the dashboard and the CLI."""
from __future__ import annotations

import logging
import time
import webbrowser
from typing import Any, Callable, Optional

from deliverymaster.addresses import MIN_STOPS, AddressList, Coordinates
from deliverymaster.geocoding import (
    Debouncer,
    GeocodeError,
    GeocodeReconciler,
    Geocoder,
    geocode_addresses,
)
from deliverymaster.map_view import MapPlan, Viewport, handle_marker_drop, project_map
from deliverymaster.pricing import MINIMUM_PRICE, CalculationResult, QuoteOptions
from deliverymaster.quote_service import (
    Delivery,
    DeliveryHistory,
    QuoteServiceError,
    QuoteValidationError,
    confirm,
    request_quote,
)
from deliverymaster.repo import HistoryStore

logger = logging.getLogger(__name__)

VIEWS = ("form", "results", "history")


class DeliveryApp:
    """Own the working form, the quote in progress and the persisted history.

    History is read from ``store`` once here and written back in full after
    every change.
    """

    def __init__(
        self,
        store: HistoryStore,
        *,
        llm_client: Any = None,
        geocoder: Optional[Geocoder] = None,
        opener: Optional[Callable[[str], Any]] = webbrowser.open,
        clock: Callable[[], float] = time.monotonic,
        minimum_price: float = MINIMUM_PRICE,
    ) -> None:
        self.store = store
        self.llm_client = llm_client
        self.opener = opener
        self.minimum_price = minimum_price
        self._clock = clock
        self._geocoder = geocoder or self._geocode_with_llm

        self.history = DeliveryHistory(store.load(), on_change=store.save)
        self.options = QuoteOptions()
        self.view = "form"
        self.result: Optional[CalculationResult] = None
        self.error: Optional[str] = None
        self.focused_id: Optional[int] = None
        self.last_whatsapp_url: Optional[str] = None
        self._reset_form()

    def _geocode_with_llm(self, texts):
        return geocode_addresses(texts, client=self.llm_client)

    def _reset_form(self) -> None:
        self.addresses = AddressList.with_defaults()
        self.geocoder = GeocodeReconciler(
            self.addresses, self._geocoder, debouncer=Debouncer(clock=self._clock)
        )
        self.focused_id = None

    # -- address list -----------------------------------------------------

    def can_add_stop(self) -> bool:
        ids = self.addresses.ids()
        if len(ids) < MIN_STOPS:
            return True
        second = self.addresses.get(ids[1])
        return second is not None and second.has_text()

    def add_stop(self) -> Optional[int]:
        if not self.can_add_stop():
            return None
        return self.addresses.add().id

    def remove_stop(self, address_id: int) -> bool:
        if len(self.addresses) <= MIN_STOPS:
            self.error = f"A rota precisa de pelo menos {MIN_STOPS} pontos."
            return False
        removed = self.addresses.remove(address_id)
        if removed and self.focused_id == address_id:
            self.focused_id = None
        return removed

    def update_address(self, address_id: int, field_name: str, value: str) -> bool:
        address = self.addresses.get(address_id)
        if address is None:
            return False
        if getattr(address, field_name, None) == value:
            return True
        updated = self.addresses.update(address_id, field_name, value)
        if updated and field_name == "value":
            self.geocoder.notify_text_changed(address_id)
        return updated

    def swap(self, id_a: int, id_b: int) -> bool:
        return self.addresses.swap(id_a, id_b)

    def swap_first_two(self) -> bool:
        ids = self.addresses.ids()
        if len(ids) < 2:
            return False
        return self.addresses.swap(ids[0], ids[1])

    def can_optimize(self) -> bool:
        return len(self.addresses) >= 3

    def set_options(self, **changes: Any) -> QuoteOptions:
        values = {
            "include_return": self.options.include_return,
            "optimize_route": self.options.optimize_route,
            "schedule": self.options.schedule,
            "reference": self.options.reference,
        }
        values.update(changes)
        self.options = QuoteOptions(**values)
        return self.options

    # -- geocoding and map ------------------------------------------------

    def tick(self) -> int:
        """Run the debounced background geocode if its quiet period has passed."""

        return self.geocoder.flush()

    def focus(self, address_id: Optional[int]) -> None:
        self.focused_id = address_id

    def locate(self, address_id: int) -> Optional[Coordinates]:
        self.error = None
        try:
            coords = self.geocoder.locate(address_id)
        except GeocodeError as exc:
            self.error = str(exc)
            return None
        if coords is not None:
            self.focused_id = address_id
        return coords

    def map_plan(self, viewport: Viewport = Viewport()) -> MapPlan:
        return project_map(self.addresses, self.focused_id, viewport)

    def drop_marker(
        self,
        plan: MapPlan,
        dragged_id: int,
        drop: Coordinates,
        zoom: Optional[float] = None,
    ) -> bool:
        return handle_marker_drop(self.addresses, plan, dragged_id, drop, zoom=zoom)

    # -- quote lifecycle --------------------------------------------------

    def calculate(self) -> Optional[CalculationResult]:
        self.error = None
        try:
            result = request_quote(
                list(self.addresses),
                self.options,
                client=self.llm_client,
                minimum_price=self.minimum_price,
            )
        except (QuoteValidationError, QuoteServiceError) as exc:
            self.error = str(exc)
            return None
        self.result = result
        self.view = "results"
        return result

    def confirm(self, payment_method: str = "pix") -> Optional[Delivery]:
        if self.result is None:
            self.view = "form"
            return None
        delivery, url = confirm(
            self.result,
            self.addresses.snapshot(),
            self.options,
            self.history,
            payment_method=payment_method,
            opener=self.opener,
        )
        self.last_whatsapp_url = url
        self.view = "history"
        logger.info("Confirmed delivery %s (%d stops)", delivery.id, len(delivery.addresses))
        return delivery

    def cancel_delivery(self, delivery_id: str) -> bool:
        return self.history.cancel(delivery_id)

    def pending_count(self) -> int:
        return self.history.pending_count()

    def back_to_form(self) -> None:
        self.view = "form"

    def show_history(self) -> None:
        self.view = "history"

    def new_request(self) -> None:
        self.result = None
        self.error = None
        self.last_whatsapp_url = None
        self.options = QuoteOptions()
        self._reset_form()
        self.view = "form"


__all__ = ["DeliveryApp", "VIEWS"]
