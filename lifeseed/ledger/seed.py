"""Genesis seeding: the system-owned trust anchor.

ensure_genesis() plants the one Lifetree owned by the genesis owner id
(GENESIS_SYSTEM by default), validated by the SYSTEM sentinel, together
with its "Live Light" vision. It is idempotent: if a tree with the genesis
owner already exists, that tree is returned and nothing is written.
"""

import logging
from typing import TYPE_CHECKING

from ..models import SYSTEM_VALIDATOR, GeoPoint, Lifetree

if TYPE_CHECKING:
    from . import Ledger

logger = logging.getLogger(__name__)

GENESIS_TREE_NAME = "Live Light"
GENESIS_LINK = "https://lifeseed.online"
GENESIS_LOCATION = GeoPoint(
    latitude=50.8354,
    longitude=4.4145,
    location_name="The Source (Brussels)",
)

GENESIS_BODY = (
    "The purpose of lightseed is to bring joy. The joy of realizing the bliss of "
    "conscious, compassionate, grateful existence by opening a portal to the center "
    "of life. By creating a bridge between creator and creation, science and "
    "spirituality, virtual and real, nothing and everything. It is designed to "
    "intimately connect our inner Self, our culture, our trees and the tree of life, "
    "the material and the digital, online world into a sustainable and sustaining "
    "circle of unified vibration, sound and light. It is rooted in nonviolence, "
    "compassion, generosity, gratitude and love."
)

# Seed of Life symbol, percent-encoded SVG
GENESIS_SYMBOL = (
    "data:image/svg+xml,%3Csvg width='500' height='500' viewBox='0 0 262 262' "
    "xmlns='http://www.w3.org/2000/svg'%3E%3Crect width='262' height='262' "
    "fill='%23064e3b' /%3E%3Cg%3E"
    "%3Ccircle cx='131' cy='131' r='64' fill='none' stroke='%23fbbf24' stroke-width='2' /%3E"
    "%3Ccircle cx='131' cy='67' r='64' fill='none' stroke='%23fbbf24' stroke-width='2' /%3E"
    "%3Ccircle cx='186.43' cy='99' r='64' fill='none' stroke='%23fbbf24' stroke-width='2' /%3E"
    "%3Ccircle cx='186.43' cy='163' r='64' fill='none' stroke='%23fbbf24' stroke-width='2' /%3E"
    "%3Ccircle cx='131' cy='195' r='64' fill='none' stroke='%23fbbf24' stroke-width='2' /%3E"
    "%3Ccircle cx='75.57' cy='163' r='64' fill='none' stroke='%23fbbf24' stroke-width='2' /%3E"
    "%3Ccircle cx='75.57' cy='99' r='64' fill='none' stroke='%23fbbf24' stroke-width='2' /%3E"
    "%3C/g%3E%3C/svg%3E"
)


def find_genesis(ledger: "Ledger") -> Lifetree | None:
    """The genesis tree, or None if it has not been seeded."""
    return ledger.lifetree.find_by_owner(ledger.settings.genesis_owner_id)


def is_genesis_tree(ledger: "Ledger", tree: Lifetree) -> bool:
    return tree.owner_id == ledger.settings.genesis_owner_id


def ensure_genesis(ledger: "Ledger", image_url: str | None = None) -> Lifetree:
    """Seed the genesis tree if it does not exist yet.

    Args:
        ledger: Open Ledger session
        image_url: Persisted cover image for the genesis tree and vision

    Returns:
        The genesis Lifetree (existing or newly planted)
    """
    ledger.begin_write()
    existing = find_genesis(ledger)
    if existing is not None:
        return existing

    owner_id = ledger.settings.genesis_owner_id
    logger.info("Planting genesis tree for %s", owner_id)
    tree = ledger.lifetree.plant(
        owner_id=owner_id,
        name=GENESIS_TREE_NAME,
        body=GENESIS_BODY,
        image_url=image_url,
        geo=GENESIS_LOCATION,
        validator_id=SYSTEM_VALIDATOR,
    )

    # The planted Root Vision becomes the genesis vision
    root_vision = ledger.vision.list_by_tree(tree.uuid)[0]
    ledger.vision.update(
        root_vision.uuid,
        owner_id,
        {"title": GENESIS_TREE_NAME, "link": GENESIS_LINK},
    )
    return tree
