"""Quote requests, delivery records and the order hand-off for DeliveryMaster."""
from __future__ import annotations

import logging
import os
import time
import webbrowser
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple
from urllib.parse import quote

from deliverymaster.addresses import Address
from deliverymaster.llm_client import complete_json
from deliverymaster.pricing import (
    MINIMUM_PRICE,
    CalculationResult,
    QuoteOptions,
    apply_minimum_price,
    build_pricing_prompt,
    format_brl,
    parse_calculation,
)

logger = logging.getLogger(__name__)

WHATSAPP_PHONE = os.environ.get("DELIVERY_WHATSAPP_PHONE", "5585987789135")
QUOTE_FAILURE_MESSAGE = (
    "Não foi possível calcular a rota. Verifique os endereços e tente novamente."
)
PAYMENT_METHODS = {"pix": "PIX", "dinheiro": "Dinheiro"}


class QuoteValidationError(ValueError):
    """Raised when the form cannot be submitted as entered."""


class QuoteServiceError(RuntimeError):
    """Raised when the pricing service fails or returns an unusable reply."""


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return {
            DeliveryStatus.PENDING: "Pendente",
            DeliveryStatus.COMPLETED: "Concluído",
            DeliveryStatus.CANCELLED: "Cancelado",
        }[self]


@dataclass(frozen=True)
class Delivery:
    """Confirmed quote as kept in the delivery history.

    Records are never edited in place: a status change produces a new record
    through :func:`cancel`. ``addresses`` holds copies taken at confirmation,
    detached from the form.
    """

    id: str
    status: DeliveryStatus
    result: CalculationResult
    addresses: Tuple[Address, ...]
    include_return: bool
    timestamp: int
    payment_method: str = "pix"

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000)


def cancel(delivery: Delivery) -> Optional[Delivery]:
    """Return ``delivery`` moved from pending to cancelled.

    Terminal states are left alone and yield ``None``.
    """

    if delivery.status is not DeliveryStatus.PENDING:
        return None
    return replace(delivery, status=DeliveryStatus.CANCELLED)


class DeliveryHistory:
    """Newest-first list of deliveries with a hook fired after every change."""

    def __init__(
        self,
        deliveries: Optional[Iterable[Delivery]] = None,
        *,
        on_change: Optional[Callable[[List[Delivery]], None]] = None,
    ) -> None:
        self._deliveries: List[Delivery] = list(deliveries or [])
        self._on_change = on_change

    def __iter__(self) -> Iterator[Delivery]:
        return iter(self._deliveries)

    def __len__(self) -> int:
        return len(self._deliveries)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(list(self._deliveries))

    def ids(self) -> List[str]:
        return [delivery.id for delivery in self._deliveries]

    def get(self, delivery_id: str) -> Optional[Delivery]:
        return next((d for d in self._deliveries if d.id == delivery_id), None)

    def prepend(self, delivery: Delivery) -> None:
        self._deliveries.insert(0, delivery)
        self._changed()

    def cancel(self, delivery_id: str) -> bool:
        for idx, delivery in enumerate(self._deliveries):
            if delivery.id != delivery_id:
                continue
            cancelled = cancel(delivery)
            if cancelled is None:
                return False
            self._deliveries[idx] = cancelled
            self._changed()
            return True
        return False

    def active(self) -> List[Delivery]:
        return [d for d in self._deliveries if d.status is DeliveryStatus.PENDING]

    def past(self) -> List[Delivery]:
        return [d for d in self._deliveries if d.status is not DeliveryStatus.PENDING]

    def pending_count(self) -> int:
        return len(self.active())


def validate_addresses(addresses: Sequence[Address]) -> None:
    for index, address in enumerate(addresses, start=1):
        if not address.has_text():
            raise QuoteValidationError(f"Preencha o endereço do ponto {index}.")


def request_quote(
    addresses: Sequence[Address],
    options: QuoteOptions,
    *,
    client: Any = None,
    minimum_price: float = MINIMUM_PRICE,
) -> CalculationResult:
    validate_addresses(addresses)
    prompt = build_pricing_prompt(addresses, options, minimum_price=minimum_price)
    try:
        payload = complete_json(prompt, client=client)
        result = parse_calculation(payload)
    except Exception as exc:  # network, empty reply, JSON and contract errors
        logger.warning("Pricing request for %d stop(s) failed: %s", len(addresses), exc)
        raise QuoteServiceError(QUOTE_FAILURE_MESSAGE) from exc
    return apply_minimum_price(result, minimum_price)


def new_delivery_id(existing: Iterable[str], now_ms: Optional[int] = None) -> str:
    """Return ``entrega-<epoch ms>``, nudged forward if that id is already taken."""

    taken = set(existing)
    stamp = int(now_ms if now_ms is not None else time.time() * 1000)
    candidate = f"entrega-{stamp}"
    while candidate in taken:
        stamp += 1
        candidate = f"entrega-{stamp}"
    return candidate


def _format_km(value: float) -> str:
    return f"{value:g}"


def build_order_message(delivery: Delivery) -> str:
    stops = "\n".join(
        f"  Ponto {idx}: {address.value} {address.complement}".rstrip()
        for idx, address in enumerate(delivery.addresses, start=1)
    )
    payment = PAYMENT_METHODS.get(delivery.payment_method, delivery.payment_method)
    lines = [
        "Olá, gostaria de solicitar um serviço de entrega.",
        f"*ID do Pedido:* {delivery.id}",
        "*Endereços:*",
        stops,
    ]
    instructions = [
        f"  Ponto {idx}: {address.instructions.strip()}"
        for idx, address in enumerate(delivery.addresses, start=1)
        if address.instructions.strip()
    ]
    if instructions:
        lines.append("*Instruções:*")
        lines.extend(instructions)
    lines.extend(
        [
            f"*Retorno ao Ponto 1:* {'Sim' if delivery.include_return else 'Não'}",
            f"*Valor Estimado:* {format_brl(delivery.result.preco_estimado)}",
            f"*Distância:* {_format_km(delivery.result.distancia_km)} km",
            f"*Forma de Pagamento:* {payment}",
            f"*Ver Rota:* {delivery.result.rota_mapa_url}",
        ]
    )
    return "\n".join(lines)


def build_whatsapp_url(message: str, phone: str = WHATSAPP_PHONE) -> str:
    return f"https://wa.me/{phone}?text={quote(message, safe='')}"


def confirm(
    result: CalculationResult,
    addresses: Sequence[Address],
    options: QuoteOptions,
    history: DeliveryHistory,
    *,
    payment_method: str = "pix",
    opener: Optional[Callable[[str], Any]] = webbrowser.open,
    now_ms: Optional[int] = None,
) -> Tuple[Delivery, str]:
    """Record a pending delivery and hand the order message to WhatsApp.

    Returns the new delivery together with the deep link. ``opener`` is
    called once; a failure there is logged and the delivery is kept.
    """

    if payment_method not in PAYMENT_METHODS:
        raise QuoteValidationError(f"Forma de pagamento inválida: {payment_method}")

    stamp = int(now_ms if now_ms is not None else time.time() * 1000)
    delivery = Delivery(
        id=new_delivery_id(history.ids(), stamp),
        status=DeliveryStatus.PENDING,
        result=result,
        addresses=tuple(
            Address(
                id=a.id,
                value=a.value,
                complement=a.complement,
                instructions=a.instructions,
                coordinates=a.coordinates,
            )
            for a in addresses
        ),
        include_return=options.include_return,
        timestamp=stamp,
        payment_method=payment_method,
    )
    history.prepend(delivery)

    url = build_whatsapp_url(build_order_message(delivery))
    if opener is not None:
        try:
            opener(url)
        except Exception:  # hand-off is best effort; the record is already kept
            logger.exception("Could not open WhatsApp link for %s", delivery.id)
    return delivery, url


__all__ = [
    "Delivery",
    "DeliveryHistory",
    "DeliveryStatus",
    "PAYMENT_METHODS",
    "QUOTE_FAILURE_MESSAGE",
    "QuoteServiceError",
    "QuoteValidationError",
    "WHATSAPP_PHONE",
    "build_order_message",
    "build_whatsapp_url",
    "cancel",
    "confirm",
    "new_delivery_id",
    "request_quote",
    "validate_addresses",
]
