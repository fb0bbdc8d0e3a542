"""Stop entries and the ordered address list used by the delivery form."""
from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

MIN_STOPS = 2
EDITABLE_FIELDS = ("value", "complement", "instructions")


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass
class Address:
    id: int
    value: str = ""
    complement: str = ""
    instructions: str = ""
    coordinates: Optional[Coordinates] = None

    def has_text(self) -> bool:
        return bool(self.value.strip())

    def needs_geocode(self) -> bool:
        return self.has_text() and self.coordinates is None


class AddressList:
    """Ordered collection of stops keyed by stable ids.

    Ids are issued from a counter that only moves forward, so an id removed
    from the list is never handed out again.
    """

    def __init__(self, addresses: Optional[List[Address]] = None) -> None:
        self._items: List[Address] = list(addresses or [])
        ids = [item.id for item in self._items]
        if len(set(ids)) != len(ids):
            raise ValueError("Address ids must be unique")
        self._next_id = max(ids, default=0) + 1

    @classmethod
    def with_defaults(cls) -> "AddressList":
        """Return the initial form state: a pickup and one destination."""

        addresses = cls()
        for _ in range(MIN_STOPS):
            addresses.add()
        return addresses

    def __iter__(self) -> Iterator[Address]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def ids(self) -> List[int]:
        return [item.id for item in self._items]

    def get(self, address_id: int) -> Optional[Address]:
        for item in self._items:
            if item.id == address_id:
                return item
        return None

    def index_of(self, address_id: int) -> Optional[int]:
        for idx, item in enumerate(self._items):
            if item.id == address_id:
                return idx
        return None

    def add(self) -> Address:
        address = Address(id=self._next_id)
        self._next_id += 1
        self._items.append(address)
        return address

    def remove(self, address_id: int) -> bool:
        idx = self.index_of(address_id)
        if idx is None:
            return False
        del self._items[idx]
        return True

    def update(self, address_id: int, field_name: str, new_value: str) -> bool:
        """Replace ``field_name`` on the entry; editing ``value`` drops its coordinates."""

        if field_name not in EDITABLE_FIELDS:
            raise ValueError(f"Unsupported address field: {field_name}")
        address = self.get(address_id)
        if address is None:
            return False
        setattr(address, field_name, new_value)
        if field_name == "value":
            address.coordinates = None
        return True

    def swap(self, id_a: int, id_b: int) -> bool:
        if id_a == id_b:
            return False
        idx_a = self.index_of(id_a)
        idx_b = self.index_of(id_b)
        if idx_a is None or idx_b is None:
            return False
        self._items[idx_a], self._items[idx_b] = self._items[idx_b], self._items[idx_a]
        return True

    def set_coordinates(self, address_id: int, coordinates: Optional[Coordinates]) -> bool:
        address = self.get(address_id)
        if address is None:
            return False
        address.coordinates = coordinates
        return True

    def snapshot(self) -> Tuple[Address, ...]:
        """Deep copy of the current entries, detached from later edits."""

        return tuple(copy.deepcopy(item) for item in self._items)


__all__ = [
    "Address",
    "AddressList",
    "Coordinates",
    "EDITABLE_FIELDS",
    "MIN_STOPS",
]
