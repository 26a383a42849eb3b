"""Domain types for lifeseed.

These types define the records handed out by the ledger and accepted by
the services. Rows are converted with ``from_row``; nothing here touches
the database.

PAYLOADS:
Pulse content enters the chain as a tagged payload (StandardPayload or
GrowthPayload). validate() runs at the service boundary, before any
transaction is opened. to_hash_payload() is the exact mapping fed to
compute_block_hash and persisted alongside the block for later audits.
"""

import json
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


class PulseType(str, Enum):
    """Block type tag."""

    STANDARD = "STANDARD"
    GROWTH = "GROWTH"  # Progress photo; also becomes the tree's cover image


class TreeStatus(str, Enum):
    """Danger axis of a tree, toggled by guardians."""

    HEALTHY = "HEALTHY"
    DANGER = "DANGER"


class MatchStatus(str, Enum):
    """Match proposal states. ACCEPTED and REJECTED are terminal."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


# Validator sentinels for trust granted by the system rather than a tree
GENESIS_VALIDATOR = "GENESIS"
SYSTEM_VALIDATOR = "SYSTEM"

DEFAULT_LOCATION_NAME = "Unknown Soil"


@dataclass(frozen=True)
class GeoPoint:
    """Best-effort coordinates for a planted tree."""

    latitude: float
    longitude: float
    location_name: str | None = None

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")


@dataclass(frozen=True)
class Lightseed:
    """Authenticated user profile, as supplied by the identity provider.

    The ledger trusts uid without further verification.
    """

    uid: str
    display_name: str = ""
    photo_url: str | None = None


@dataclass(frozen=True)
class PulsePayload:
    """Base class for tagged pulse payloads."""

    title: str
    body: str
    image_url: str | None = None

    type: ClassVar[PulseType]

    def validate(self, image_pending: bool = False) -> None:
        """Check the payload before it enters an append transaction.

        Args:
            image_pending: True when an image upload will supply image_url
                           before the append

        Raises:
            ValueError: If a required field is missing or malformed
        """
        if not self.title or not self.title.strip():
            raise ValueError("Pulse title must not be empty")
        if not self.body or not self.body.strip():
            raise ValueError("Pulse body must not be empty")
        if self.image_url is not None and self.image_url.startswith("data:"):
            raise ValueError("Pulse image must be persisted before minting")

    def with_image(self, image_url: str | None) -> "PulsePayload":
        """Return a copy of this payload pointing at a stored image."""
        return type(self)(title=self.title, body=self.body, image_url=image_url)

    def to_hash_payload(self, author_id: str) -> dict[str, Any]:
        """Mapping hashed into the block (engagement data is excluded)."""
        return {
            "title": self.title,
            "body": self.body,
            "image": self.image_url or "",
            "author": author_id,
            "type": self.type.value,
        }


@dataclass(frozen=True)
class StandardPayload(PulsePayload):
    """Ordinary text pulse, optionally with an image."""

    type: ClassVar[PulseType] = PulseType.STANDARD


@dataclass(frozen=True)
class GrowthPayload(PulsePayload):
    """Growth snapshot; must carry an image."""

    type: ClassVar[PulseType] = PulseType.GROWTH

    def validate(self, image_pending: bool = False) -> None:
        super().validate(image_pending)
        if not self.image_url and not image_pending:
            raise ValueError("Growth pulses require an image")


PAYLOAD_TYPES: dict[PulseType, type[PulsePayload]] = {
    PulseType.STANDARD: StandardPayload,
    PulseType.GROWTH: GrowthPayload,
}


def build_payload(
    pulse_type: PulseType | str,
    title: str,
    body: str,
    image_url: str | None = None,
) -> PulsePayload:
    """Build the tagged payload for a pulse type.

    Raises:
        ValueError: If pulse_type is not a known PulseType
    """
    try:
        pulse_type = PulseType(pulse_type)
    except ValueError:
        raise ValueError(f"Unknown pulse type: {pulse_type!r}") from None
    return PAYLOAD_TYPES[pulse_type](title=title, body=body, image_url=image_url)


@dataclass
class Lifetree:
    """Root ledger entity: a planted tree and its chain cursor."""

    uuid: str
    owner_id: str
    name: str
    body: str
    created_at: str
    genesis_hash: str
    latest_hash: str
    block_height: int
    validated: bool
    validator_id: str | None = None
    short_title: str | None = None
    image_url: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_name: str | None = None
    status: TreeStatus = TreeStatus.HEALTHY
    guardians: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: sqlite3.Row, guardians: list[str] | None = None) -> "Lifetree":
        return cls(
            uuid=row["uuid"],
            owner_id=row["owner_id"],
            name=row["name"],
            body=row["body"],
            created_at=row["created_at"],
            genesis_hash=row["genesis_hash"],
            latest_hash=row["latest_hash"],
            block_height=row["block_height"],
            validated=bool(row["validated"]),
            validator_id=row["validator_id"],
            short_title=row["short_title"],
            image_url=row["image_url"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            location_name=row["location_name"],
            status=TreeStatus(row["status"]),
            guardians=list(guardians or []),
        )

    def is_guardian(self, user_id: str) -> bool:
        return user_id in self.guardians

    def can_edit(self, user_id: str) -> bool:
        """Owner and guardians may edit descriptive fields."""
        return user_id == self.owner_id or self.is_guardian(user_id)


@dataclass(frozen=True)
class ChainHead:
    """Snapshot of a tree's chain cursor."""

    tree_uuid: str
    latest_hash: str
    block_height: int


@dataclass
class Block:
    """A chain-linked pulse. Ledger fields never change after creation."""

    uuid: str
    lifetree_uuid: str
    height: int
    type: PulseType
    title: str
    body: str
    author_id: str
    author_name: str
    created_at: str
    timestamp_ms: int
    previous_hash: str
    hash: str
    payload: dict[str, Any]
    image_url: str | None = None
    author_photo: str | None = None
    love_count: int = 0
    comment_count: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Block":
        return cls(
            uuid=row["uuid"],
            lifetree_uuid=row["lifetree_uuid"],
            height=row["height"],
            type=PulseType(row["type"]),
            title=row["title"],
            body=row["body"],
            author_id=row["author_id"],
            author_name=row["author_name"],
            created_at=row["created_at"],
            timestamp_ms=row["timestamp_ms"],
            previous_hash=row["previous_hash"],
            hash=row["hash"],
            payload=json.loads(row["payload"]),
            image_url=row["image_url"],
            author_photo=row["author_photo"],
            love_count=row["love_count"],
            comment_count=row["comment_count"],
        )


@dataclass
class ChainVerification:
    """Result of replaying one tree's chain."""

    tree_uuid: str
    valid: bool
    block_height: int
    verified_blocks: int
    first_break_height: int | None = None
    cursor_drift: bool = False
    message: str = ""


@dataclass
class Vision:
    """Non-chained aspirational record attached to a tree."""

    uuid: str
    lifetree_uuid: str
    author_id: str
    title: str
    body: str
    created_at: str
    link: str | None = None
    image_url: str | None = None
    updated_at: str | None = None
    participants: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: sqlite3.Row, participants: list[str] | None = None) -> "Vision":
        return cls(
            uuid=row["uuid"],
            lifetree_uuid=row["lifetree_uuid"],
            author_id=row["author_id"],
            title=row["title"],
            body=row["body"],
            created_at=row["created_at"],
            link=row["link"],
            image_url=row["image_url"],
            updated_at=row["updated_at"],
            participants=list(participants or []),
        )


@dataclass
class MatchProposal:
    """Request linking two (tree, pulse, user) triples."""

    uuid: str
    initiator_tree_uuid: str
    initiator_pulse_uuid: str
    initiator_uid: str
    target_tree_uuid: str
    target_pulse_uuid: str
    target_uid: str
    status: MatchStatus
    created_at: str
    resolved_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "MatchProposal":
        return cls(
            uuid=row["uuid"],
            initiator_tree_uuid=row["initiator_tree_uuid"],
            initiator_pulse_uuid=row["initiator_pulse_uuid"],
            initiator_uid=row["initiator_uid"],
            target_tree_uuid=row["target_tree_uuid"],
            target_pulse_uuid=row["target_pulse_uuid"],
            target_uid=row["target_uid"],
            status=MatchStatus(row["status"]),
            created_at=row["created_at"],
            resolved_at=row["resolved_at"],
        )


@dataclass
class Comment:
    """Off-chain comment on a pulse."""

    uuid: str
    pulse_uuid: str
    body: str
    author_id: str
    author_name: str
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Comment":
        return cls(
            uuid=row["uuid"],
            pulse_uuid=row["pulse_uuid"],
            body=row["body"],
            author_id=row["author_id"],
            author_name=row["author_name"],
            created_at=row["created_at"],
        )
