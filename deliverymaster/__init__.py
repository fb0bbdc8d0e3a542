"""DeliveryMaster quote and delivery-request core."""

# Only the dependency-free data model is re-exported here; modules that talk
# to the generative service or SQLite should be imported directly.
from .addresses import MIN_STOPS, Address, AddressList, Coordinates

__all__ = [
    "Address",
    "AddressList",
    "Coordinates",
    "MIN_STOPS",
]
