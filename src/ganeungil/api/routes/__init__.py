"""Route group exports."""

from . import batch, carrier_routes, health, matches, requests, stations

__all__ = ["batch", "carrier_routes", "health", "matches", "requests", "stations"]
