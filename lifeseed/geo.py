"""Best-effort geolocation.

Planting never fails because of location: a missing locator, a locator
error, or out-of-range coordinates all mean "no coordinates", and the tree
is planted at "Unknown Soil".
"""

import logging
from typing import Protocol

from .models import GeoPoint

logger = logging.getLogger(__name__)


class Locator(Protocol):
    def locate(self) -> GeoPoint | None: ...


def best_effort_location(locator: Locator | None) -> GeoPoint | None:
    """Ask locator for a position, swallowing its failures."""
    if locator is None:
        return None
    try:
        return locator.locate()
    except Exception as e:
        logger.warning("Geolocation unavailable, planting without coordinates: %s", e)
        return None
