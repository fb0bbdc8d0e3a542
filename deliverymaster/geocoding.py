"""Debounced, batched geocoding of the address list through the generative service."""
from __future__ import annotations

import json
import logging
import math
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from deliverymaster.addresses import AddressList, Coordinates
from deliverymaster.llm_client import complete_json

logger = logging.getLogger(__name__)

GEOCODE_DEBOUNCE_SECONDS = float(os.environ.get("DELIVERY_GEOCODE_DEBOUNCE", "1.0"))

Geocoder = Callable[[Sequence[str]], List[Optional[Coordinates]]]


class GeocodeError(RuntimeError):
    """Raised when a geocode request cannot be completed."""


def build_geocode_prompt(texts: Sequence[str]) -> str:
    return f"""
Converta cada endereço da lista abaixo em coordenadas geográficas (latitude e longitude).
Considere endereços no Brasil quando o país não for informado.

Endereços (JSON):
{json.dumps(list(texts), ensure_ascii=False)}

Responda apenas com um array JSON com exatamente {len(texts)} elementos, na mesma ordem da entrada.
Cada elemento deve ser {{"lat": número, "lng": número}} ou null quando o endereço estiver vazio ou não puder ser localizado.
""".strip()


def _coerce_coordinates(item: Any) -> Optional[Coordinates]:
    if not isinstance(item, dict):
        return None
    lat = item.get("lat")
    lng = item.get("lng")
    if isinstance(lat, bool) or isinstance(lng, bool):
        return None
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    if math.isnan(lat) or math.isnan(lng):
        return None
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
        return None
    return Coordinates(lat=float(lat), lng=float(lng))


def geocode_addresses(
    texts: Sequence[str], *, client: Any = None
) -> List[Optional[Coordinates]]:
    """Resolve ``texts`` to coordinates, one entry per input in the same order.

    A reply that is not an array of the same length counts as a total
    failure and yields ``None`` for every entry.
    """

    if not texts:
        return []
    try:
        payload = complete_json(build_geocode_prompt(texts), client=client, json_object=False)
    except Exception as exc:  # transport, configuration and JSON errors alike
        raise GeocodeError(f"Geocode request failed: {exc}") from exc

    if not isinstance(payload, list) or len(payload) != len(texts):
        logger.warning(
            "Discarding geocode reply: expected a list of %d entries, got %r",
            len(texts),
            type(payload).__name__ if not isinstance(payload, list) else len(payload),
        )
        return [None] * len(texts)
    return [_coerce_coordinates(item) for item in payload]


class Debouncer:
    """Quiet-period timer driven by polling rather than by a background thread."""

    def __init__(
        self,
        delay: float = GEOCODE_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.delay = delay
        self._clock = clock
        self._deadline: Optional[float] = None

    @property
    def is_armed(self) -> bool:
        return self._deadline is not None

    def touch(self) -> None:
        self._deadline = self._clock() + self.delay

    def cancel(self) -> None:
        self._deadline = None

    def is_due(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline


@dataclass(frozen=True)
class GeocodeBatch:
    entries: Tuple[Tuple[int, str, int], ...] = field(default_factory=tuple)

    @property
    def texts(self) -> List[str]:
        return [text for _, text, _ in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


class GeocodeReconciler:
    """Keep address coordinates in step with the text the user has typed.

    Each address carries a generation number that moves on every text
    edit. A reply is written back only when both the text and the
    generation still match what was sent, so late replies for old text are
    dropped.
    """

    def __init__(
        self,
        addresses: AddressList,
        geocoder: Optional[Geocoder] = None,
        *,
        debouncer: Optional[Debouncer] = None,
    ) -> None:
        self.addresses = addresses
        self.geocoder: Geocoder = geocoder or geocode_addresses
        self.debouncer = debouncer or Debouncer()
        self._generations: Dict[int, int] = {}

    def generation(self, address_id: int) -> int:
        return self._generations.get(address_id, 0)

    def bump(self, address_id: int) -> None:
        self._generations[address_id] = self.generation(address_id) + 1

    def notify_text_changed(self, address_id: Optional[int] = None) -> None:
        if address_id is not None:
            self.bump(address_id)
        self.debouncer.touch()

    def pending(self) -> List[int]:
        return [address.id for address in self.addresses if address.needs_geocode()]

    def begin_batch(self, ids: Optional[Sequence[int]] = None) -> Optional[GeocodeBatch]:
        wanted = set(ids) if ids is not None else None
        entries = tuple(
            (address.id, address.value, self.generation(address.id))
            for address in self.addresses
            if address.needs_geocode() and (wanted is None or address.id in wanted)
        )
        if not entries:
            return None
        return GeocodeBatch(entries=entries)

    def apply_batch(
        self, batch: GeocodeBatch, results: Sequence[Optional[Coordinates]]
    ) -> int:
        if len(results) != len(batch):
            logger.warning(
                "Geocode batch size mismatch (%d sent, %d received); ignoring reply",
                len(batch),
                len(results),
            )
            return 0

        applied = 0
        for (address_id, text, generation), coords in zip(batch.entries, results):
            address = self.addresses.get(address_id)
            if address is None:
                logger.debug("Address %s removed before geocode reply", address_id)
                continue
            if address.value != text or self.generation(address_id) != generation:
                logger.debug("Dropping stale geocode reply for address %s", address_id)
                continue
            if coords is None or address.coordinates is not None:
                continue
            address.coordinates = coords
            applied += 1
        return applied

    def flush(self, *, force: bool = False) -> int:
        """Issue the debounced batch request when the quiet period has elapsed."""

        if not force and not self.debouncer.is_due():
            return 0
        self.debouncer.cancel()
        batch = self.begin_batch()
        if batch is None:
            return 0

        logger.debug("Geocoding %d pending address(es)", len(batch))
        try:
            results = self.geocoder(batch.texts)
        except GeocodeError as exc:
            logger.warning("Background geocode failed: %s", exc)
            return 0
        return self.apply_batch(batch, results)

    def locate(self, address_id: int) -> Optional[Coordinates]:
        """Resolve a single address right away, skipping the debounce."""

        address = self.addresses.get(address_id)
        if address is None:
            return None
        if address.coordinates is not None:
            return address.coordinates

        position = (self.addresses.index_of(address_id) or 0) + 1
        message = f"Não foi possível localizar o ponto {position}."
        batch = self.begin_batch([address_id])
        if batch is None:
            raise GeocodeError(message)
        try:
            results = self.geocoder(batch.texts)
        except GeocodeError as exc:
            logger.warning("Manual geocode for address %s failed: %s", address_id, exc)
            raise GeocodeError(message) from exc

        self.apply_batch(batch, results)
        if address.coordinates is None:
            raise GeocodeError(message)
        return address.coordinates


__all__ = [
    "Debouncer",
    "GEOCODE_DEBOUNCE_SECONDS",
    "GeocodeBatch",
    "GeocodeError",
    "GeocodeReconciler",
    "build_geocode_prompt",
    "geocode_addresses",
]
