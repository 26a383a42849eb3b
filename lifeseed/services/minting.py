"""Pulse and vision minting.

MINT PROTOCOL:
1. Build the tagged payload and validate it (no I/O yet)
2. Check the tree exists and the author may post to it
3. Persist any raw image through BlobStorage; StorageError aborts here,
   before the chain is touched
4. Append under with_append_retry; every attempt is a fresh Ledger session
   that re-reads the head

GENESIS PROTECTION:
Only configured stewards (settings.steward_ids) may post GROWTH pulses to
the genesis tree, since those replace its cover image.
"""

import logging
from typing import Callable, Optional

from ..config import Settings
from ..exceptions import PermissionDenied, StorageError, ValidationError
from ..ledger import Ledger, get_ledger
from ..models import Block, Comment, Lifetree, Lightseed, PulsePayload, PulseType, Vision, build_payload
from ..storage import BlobStorage, is_data_url, persist_image
from ..utils import uid
from .retry import with_append_retry

logger = logging.getLogger(__name__)

ImageInput = bytes | str | None


def needs_upload(image: ImageInput) -> bool:
    """True when image is raw bytes or a data: URL rather than a stored reference."""
    if isinstance(image, (bytes, bytearray)):
        return len(image) > 0
    return is_data_url(image)


class MintingService:
    """Mints pulses onto tree chains and creates visions."""

    def __init__(
        self,
        settings: Settings,
        storage: Optional[BlobStorage] = None,
        ledger_factory: Optional[Callable[[], Ledger]] = None,
    ):
        """Initialize the minting service.

        Args:
            settings: Settings (retry bound, genesis owner, stewards)
            storage: Blob storage for images; required only when raw images
                     are minted
            ledger_factory: Session factory (defaults to get_ledger(settings))
        """
        self.settings = settings
        self.storage = storage
        self._ledger_factory = ledger_factory or (lambda: get_ledger(settings))

    def _persist(self, image: ImageInput, path: str) -> str | None:
        if needs_upload(image) and self.storage is None:
            raise StorageError("No blob storage configured for image upload", {"path": path})
        return persist_image(self.storage, image, path)

    def _check_genesis_protection(
        self, tree: Lifetree, payload: PulsePayload, author: Lightseed
    ) -> None:
        if tree.owner_id != self.settings.genesis_owner_id:
            return
        author_id = uid.normalize(author.uid)
        if payload.type is PulseType.GROWTH and author_id not in self.settings.steward_ids:
            raise PermissionDenied(
                "Only a steward can post growth to the genesis tree",
                {"tree_uuid": tree.uuid, "user_id": author_id},
            )

    def mint_pulse(
        self,
        tree_id: str,
        pulse_type: PulseType | str,
        title: str,
        body: str,
        author: Lightseed,
        image: ImageInput = None,
    ) -> Block:
        """Mint a pulse onto a tree's chain.

        Args:
            tree_id: Target tree
            pulse_type: STANDARD or GROWTH
            title: Pulse title
            body: Pulse text
            author: Authenticated author
            image: Raw bytes, a data: URL, a stored URL, or None

        Returns:
            The appended Block

        Raises:
            ValidationError: If the payload is malformed (GROWTH needs an image)
            TreeNotFoundError: If the tree does not exist
            PermissionDenied: If genesis protection refuses the author
            StorageError: If the image cannot be persisted (ledger untouched)
            ConcurrentAppendError: If every retry lost its race
        """
        tree_id = uid.normalize(tree_id)
        upload = needs_upload(image)
        try:
            payload = build_payload(
                pulse_type, title, body,
                image_url=None if upload or not image else image,
            )
            payload.validate(image_pending=upload)
        except ValueError as e:
            raise ValidationError(str(e), {"tree_uuid": tree_id}) from e

        with self._ledger_factory() as ledger:
            tree = ledger.lifetree.get_by_id(tree_id)
            self._check_genesis_protection(tree, payload, author)

        if upload:
            image_url = self._persist(image, f"pulses/{tree_id}/{uid.generate_uuid()}")
            payload = payload.with_image(image_url)

        def attempt() -> Block:
            with self._ledger_factory() as ledger:
                current = ledger.lifetree.get_by_id(tree_id)
                self._check_genesis_protection(current, payload, author)
                return ledger.chain.append_block(current.uuid, payload, author)

        block = with_append_retry(attempt, self.settings.max_append_retries)
        logger.info("Minted %s pulse %s on %s", block.type.value, block.uuid, tree_id)
        return block

    def create_vision(
        self,
        tree_id: str,
        author: Lightseed,
        title: str,
        body: str,
        link: str | None = None,
        image: ImageInput = None,
    ) -> Vision:
        """Create a vision (not chained).

        Raises:
            ValidationError: If the title is empty
            TreeNotFoundError: If the tree does not exist
            StorageError: If the image cannot be persisted
        """
        if not title or not title.strip():
            raise ValidationError("Vision title must not be empty", {"tree_uuid": tree_id})

        with self._ledger_factory() as ledger:
            ledger.lifetree.get_by_id(tree_id)

        image_url = self._persist(image, f"visions/{tree_id}/{uid.generate_uuid()}")

        with self._ledger_factory() as ledger:
            return ledger.vision.create(
                tree_id, author.uid, title, body, link=link, image_url=image_url
            )

    def love(self, pulse_id: str, user_id: str) -> int:
        """Toggle a love on a pulse; returns the new love count."""
        with self._ledger_factory() as ledger:
            return ledger.social.toggle_love(pulse_id, user_id)

    def is_loved(self, pulse_id: str, user_id: str) -> bool:
        with self._ledger_factory() as ledger:
            return ledger.social.is_loved(pulse_id, user_id)

    def comment(self, pulse_id: str, author: Lightseed, body: str) -> Comment:
        with self._ledger_factory() as ledger:
            return ledger.social.add_comment(pulse_id, author, body)
