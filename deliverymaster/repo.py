"""SQLite-backed key/value storage for the delivery history."""
from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence

from deliverymaster.addresses import Address, Coordinates
from deliverymaster.pricing import CalculationResult
from deliverymaster.quote_service import Delivery, DeliveryStatus

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.environ.get("DELIVERY_DB", "deliveries.db")
HISTORY_KEY = "deliveryHistory"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS local_storage (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""


def get_connection(db_path: Optional[str] = None) -> sqlite3.Connection:
    """Return a SQLite connection using WAL mode."""
    conn = sqlite3.connect(db_path or DEFAULT_DB_PATH, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    return conn


@contextmanager
def connection_scope(db_path: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    conn.commit()


def address_to_dict(address: Address) -> Dict[str, Any]:
    coords = address.coordinates
    return {
        "id": address.id,
        "value": address.value,
        "complement": address.complement,
        "instructions": address.instructions,
        "coordinates": {"lat": coords.lat, "lng": coords.lng} if coords else None,
    }


def address_from_dict(data: Dict[str, Any]) -> Address:
    coords = data.get("coordinates")
    return Address(
        id=int(data["id"]),
        value=data.get("value", ""),
        complement=data.get("complement", ""),
        instructions=data.get("instructions", ""),
        coordinates=(
            Coordinates(lat=float(coords["lat"]), lng=float(coords["lng"]))
            if coords
            else None
        ),
    )


def delivery_to_dict(delivery: Delivery) -> Dict[str, Any]:
    return {
        "id": delivery.id,
        "status": delivery.status.value,
        "result": delivery.result.to_dict(),
        "addresses": [address_to_dict(a) for a in delivery.addresses],
        "timestamp": delivery.timestamp,
        "includeReturn": delivery.include_return,
        "paymentMethod": delivery.payment_method,
    }


def delivery_from_dict(data: Dict[str, Any]) -> Delivery:
    result = data["result"]
    return Delivery(
        id=str(data["id"]),
        status=DeliveryStatus(data["status"]),
        result=CalculationResult(
            distancia_km=float(result["distancia_km"]),
            tempo_minutos=float(result["tempo_minutos"]),
            preco_estimado=float(result["preco_estimado"]),
            rota_mapa_url=str(result["rota_mapa_url"]),
        ),
        addresses=tuple(address_from_dict(a) for a in data.get("addresses", [])),
        include_return=bool(data.get("includeReturn", False)),
        timestamp=int(data["timestamp"]),
        payment_method=data.get("paymentMethod", "pix"),
    )


class HistoryStore:
    """Persist the whole delivery history as one JSON blob under ``HISTORY_KEY``."""

    def __init__(self, conn: sqlite3.Connection, key: str = HISTORY_KEY) -> None:
        self.conn = conn
        self.key = key
        ensure_schema(conn)

    def load(self) -> List[Delivery]:
        row = self.conn.execute(
            "SELECT value FROM local_storage WHERE key = ?", (self.key,)
        ).fetchone()
        if row is None:
            return []
        try:
            raw = json.loads(row[0])
            return [delivery_from_dict(item) for item in raw]
        except (TypeError, ValueError, KeyError):
            logger.exception("Failed to load delivery history from %r", self.key)
            return []

    def save(self, deliveries: Sequence[Delivery]) -> None:
        blob = json.dumps([delivery_to_dict(d) for d in deliveries], ensure_ascii=False)
        try:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO local_storage(key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (self.key, blob, datetime.now(timezone.utc).isoformat()),
            )
            self.conn.commit()
        except sqlite3.Error:
            logger.exception("Failed to save delivery history to %r", self.key)


__all__ = [
    "DEFAULT_DB_PATH",
    "HISTORY_KEY",
    "HistoryStore",
    "SCHEMA_SQL",
    "address_from_dict",
    "address_to_dict",
    "connection_scope",
    "delivery_from_dict",
    "delivery_to_dict",
    "ensure_schema",
    "get_connection",
]
