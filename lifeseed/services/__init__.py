"""Workflows on top of the ledger.

Services own session boundaries: each operation opens its own Ledger
(one transaction) through an injected ledger_factory, and does all
external I/O (blob storage, geolocation) before that transaction starts.

USAGE:
    >>> services = build_services(Settings())
    >>> tree = services.stewardship.plant(owner, "Oak", "Roots")
    >>> services.minting.mint_pulse(tree.uuid, "STANDARD", "Hello", "Light", owner)
"""

from dataclasses import dataclass
from typing import Callable, Optional

from ..config import Settings
from ..ledger import Ledger
from ..storage import LocalBlobStorage
from .matching import MatchingService
from .minting import MintingService
from .retry import with_append_retry
from .stewardship import StewardshipService


@dataclass
class Services:
    """The three workflows wired to one deployment's settings and storage."""
    stewardship: StewardshipService
    minting: MintingService
    matching: MatchingService


def build_services(
    settings: Settings,
    ledger_factory: Optional[Callable[[], Ledger]] = None,
) -> Services:
    """Wire the services for a deployment.

    Images are stored by a LocalBlobStorage under settings.blob_dir and
    linked through settings.public_base_url.

    Args:
        settings: Deployment settings
        ledger_factory: Optional session factory (defaults to get_ledger(settings))

    Returns:
        Services sharing one blob storage and session factory
    """
    storage = LocalBlobStorage.from_settings(settings)
    return Services(
        stewardship=StewardshipService(settings, storage=storage, ledger_factory=ledger_factory),
        minting=MintingService(settings, storage=storage, ledger_factory=ledger_factory),
        matching=MatchingService(settings, ledger_factory=ledger_factory),
    )


__all__ = [
    "MatchingService",
    "MintingService",
    "Services",
    "StewardshipService",
    "build_services",
    "with_append_retry",
]
