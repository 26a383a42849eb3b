"""Planting, validation and guardianship workflow.

A tree moves along three independent axes:
- trust: unvalidated -> validated, once, on the word of a validated tree
- guardianship: any user may join or leave the guardian set
- danger: guardians flip HEALTHY <-> DANGER

Guardian and status writes never touch latest_hash/block_height, so they
do not contend with chain appends on the same tree.
"""

import logging
from typing import Any, Callable, Optional

from ..config import Settings
from ..exceptions import StorageError, ValidationError
from ..geo import Locator, best_effort_location
from ..ledger import Ledger, get_ledger
from ..ledger import seed
from ..models import Lifetree, Lightseed, TreeStatus
from ..storage import BlobStorage, persist_image
from ..utils import uid
from .minting import ImageInput, needs_upload

logger = logging.getLogger(__name__)


class StewardshipService:
    """Tree lifecycle outside of chain appends."""

    def __init__(
        self,
        settings: Settings,
        storage: Optional[BlobStorage] = None,
        ledger_factory: Optional[Callable[[], Ledger]] = None,
    ):
        self.settings = settings
        self.storage = storage
        self._ledger_factory = ledger_factory or (lambda: get_ledger(settings))

    def _persist(self, image: ImageInput, path: str) -> str | None:
        if needs_upload(image) and self.storage is None:
            raise StorageError("No blob storage configured for image upload", {"path": path})
        return persist_image(self.storage, image, path)

    def ensure_genesis(self) -> Lifetree:
        """Seed the genesis tree once; later calls return it unchanged."""
        with self._ledger_factory() as ledger:
            existing = seed.find_genesis(ledger)
        if existing is not None:
            return existing

        image_url = None
        if self.storage is not None:
            image_url = self.storage.store_data_url(seed.GENESIS_SYMBOL, "genesis/seed-of-life")

        with self._ledger_factory() as ledger:
            return seed.ensure_genesis(ledger, image_url=image_url)

    def plant(
        self,
        owner: Lightseed,
        name: str,
        body: str,
        short_title: str | None = None,
        image: ImageInput = None,
        locator: Locator | None = None,
    ) -> Lifetree:
        """Plant a tree for owner.

        Geolocation is best effort; the image is persisted before the
        planting transaction opens.

        Raises:
            ValidationError: If the name is empty
            DuplicateTreeError: If owner still holds an unvalidated tree
            StorageError: If the image cannot be persisted
        """
        if not name or not name.strip():
            raise ValidationError("Lifetree name must not be empty", {"owner_id": owner.uid})

        geo = best_effort_location(locator)
        image_url = self._persist(image, f"lifetrees/{owner.uid}/{uid.generate_uuid()}")

        with self._ledger_factory() as ledger:
            return ledger.lifetree.plant(
                owner_id=owner.uid,
                name=name,
                body=body,
                short_title=short_title,
                image_url=image_url,
                geo=geo,
            )

    def validate(self, target_id: str, validator_id: str) -> Lifetree:
        """Validate target_id on the authority of validator_id (idempotent)."""
        with self._ledger_factory() as ledger:
            return ledger.lifetree.validate(target_id, validator_id)

    def join(self, tree_id: str, user_id: str) -> list[str]:
        with self._ledger_factory() as ledger:
            return ledger.lifetree.join_guardians(tree_id, user_id)

    def leave(self, tree_id: str, user_id: str) -> list[str]:
        with self._ledger_factory() as ledger:
            return ledger.lifetree.leave_guardians(tree_id, user_id)

    def toggle_status(self, tree_id: str, user_id: str) -> TreeStatus:
        with self._ledger_factory() as ledger:
            return ledger.lifetree.toggle_status(tree_id, user_id)

    def edit(self, tree_id: str, user_id: str, **fields: Any) -> Lifetree:
        """Edit descriptive fields as owner or guardian.

        An "image" keyword is persisted first and stored as image_url.
        """
        if "image" in fields:
            image = fields.pop("image")
            fields["image_url"] = self._persist(
                image, f"lifetrees/{user_id}/{uid.generate_uuid()}"
            )
        with self._ledger_factory() as ledger:
            return ledger.lifetree.update(tree_id, user_id, fields)

    def delete(self, tree_id: str, user_id: str) -> None:
        with self._ledger_factory() as ledger:
            ledger.lifetree.delete(tree_id, user_id)
