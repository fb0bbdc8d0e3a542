"""Pricing prompt, response contract and minimum-fare rule."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Sequence

from deliverymaster.addresses import Address

PRICE_PER_KM = 1.15
EXTRA_STOP_FEE = 2.00
FREE_STOPS = 2
RETURN_SURCHARGE = 0.60
MINIMUM_PRICE = float(os.environ.get("DELIVERY_MIN_PRICE", "6.00"))

SCHEDULE_MODES = ("now", "schedule")

RESULT_FIELDS = ("distancia_km", "tempo_minutos", "preco_estimado", "rota_mapa_url")


@dataclass(frozen=True)
class CalculationResult:
    distancia_km: float
    tempo_minutos: float
    preco_estimado: float
    rota_mapa_url: str

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in RESULT_FIELDS}


@dataclass(frozen=True)
class QuoteOptions:
    include_return: bool = False
    optimize_route: bool = False
    schedule: str = "now"
    reference: str = ""

    def __post_init__(self) -> None:
        if self.schedule not in SCHEDULE_MODES:
            raise ValueError(f"Unknown schedule mode: {self.schedule}")


def format_brl(amount: float) -> str:
    """Format ``amount`` as Brazilian reais, e.g. ``R$ 1.234,50``."""

    text = f"{amount:,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")


def _yes_no(flag: bool) -> str:
    return "Sim" if flag else "Não"


def _format_stop(index: int, address: Address) -> str:
    line = f"Ponto {index}: {address.value.strip()}"
    if address.complement.strip():
        line += f" ({address.complement.strip()})"
    if address.coordinates is not None:
        line += f" [lat {address.coordinates.lat:.6f}, lng {address.coordinates.lng:.6f}]"
    if address.instructions.strip():
        line += f"\n  Instruções: {address.instructions.strip()}"
    return line


def build_pricing_prompt(
    addresses: Sequence[Address],
    options: QuoteOptions,
    *,
    minimum_price: float = MINIMUM_PRICE,
) -> str:
    stops = "\n".join(
        _format_stop(idx, address) for idx, address in enumerate(addresses, start=1)
    )
    schedule_label = "Imediata" if options.schedule == "now" else "Agendada"
    reference = options.reference.strip() or "(nenhuma)"
    return f"""
Você é um agente de logística da DeliveryMaster. Calcule a rota de entrega com dados de mapeamento equivalentes ao Google Maps.
Valide os endereços, calcule a rota, a distância total em km e o tempo de percurso em minutos.

**Endereços Fornecidos:**
{stops}

**Opções de Rota:**
- Incluir retorno ao Ponto 1: {_yes_no(options.include_return)}
- Otimizar rota (menor caminho): {_yes_no(options.optimize_route)} (se 'Sim', reordene os pontos 2 em diante, sempre começando no Ponto 1 e, com retorno, terminando no Ponto 1)
- Coleta: {schedule_label}
- Referência do pedido: {reference}

**Regras de Preço (aplicar estritamente):**
1. Custo por km: {format_brl(PRICE_PER_KM)}/km.
2. Taxa por ponto de parada: {format_brl(EXTRA_STOP_FEE)} por ponto a partir do {FREE_STOPS + 1}º ponto.
3. Acréscimo para retorno: {RETURN_SURCHARGE * 100:.0f}% sobre o total de distância e taxas quando o retorno for solicitado.
4. Valor mínimo da corrida: {format_brl(minimum_price)}.

**Formato da Resposta:**
Responda apenas com um objeto JSON com os campos:
"distancia_km" (número), "tempo_minutos" (número), "preco_estimado" (número), "rota_mapa_url" (URL do Google Maps com a rota entre todos os pontos).
""".strip()


def _as_number(payload: Mapping[str, Any], name: str) -> float:
    value = payload[name]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Field {name!r} must be numeric, got {value!r}")
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"Field {name!r} must be finite")
    return number


def parse_calculation(payload: Any) -> CalculationResult:
    """Validate the pricing reply; every field in ``RESULT_FIELDS`` is required."""

    if not isinstance(payload, Mapping):
        raise ValueError("Pricing response must be a JSON object")
    missing = [name for name in RESULT_FIELDS if name not in payload]
    if missing:
        raise ValueError(f"Pricing response missing fields: {', '.join(missing)}")
    route_url = payload["rota_mapa_url"]
    if not isinstance(route_url, str):
        raise ValueError("Field 'rota_mapa_url' must be a string")
    return CalculationResult(
        distancia_km=_as_number(payload, "distancia_km"),
        tempo_minutos=_as_number(payload, "tempo_minutos"),
        preco_estimado=_as_number(payload, "preco_estimado"),
        rota_mapa_url=route_url,
    )


def apply_minimum_price(
    result: CalculationResult, minimum_price: float = MINIMUM_PRICE
) -> CalculationResult:
    if result.preco_estimado < minimum_price:
        return replace(result, preco_estimado=minimum_price)
    return result


__all__ = [
    "CalculationResult",
    "EXTRA_STOP_FEE",
    "MINIMUM_PRICE",
    "PRICE_PER_KM",
    "QuoteOptions",
    "RESULT_FIELDS",
    "RETURN_SURCHARGE",
    "SCHEDULE_MODES",
    "apply_minimum_price",
    "build_pricing_prompt",
    "format_brl",
    "parse_calculation",
]
