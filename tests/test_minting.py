"""Tests for the minting workflow.

Coverage:
- STANDARD and GROWTH pulses through MintingService
- Image persistence before the append (bytes, data URLs, stored URLs)
- Storage failures leave the chain untouched
- Genesis tree protection
- Bounded retry on lost append races
- Visions, loves and comments through the service
"""

import pytest

from lifeseed.exceptions import (
    ConcurrentAppendError,
    PermissionDenied,
    ResourceNotFound,
    StorageError,
    TreeNotFoundError,
    ValidationError,
)
from lifeseed.ledger import get_ledger, seed
from lifeseed.models import Lightseed, PulseType
from lifeseed.services import MintingService, with_append_retry
from lifeseed.services.minting import needs_upload

PNG_DATA_URL = "data:image/png;base64,iVBORw0KGgo="


class FailingStorage:
    """BlobStorage whose uploads always fail."""

    def __init__(self):
        self.calls = 0

    def store_bytes(self, data, path, mime_type=None):
        self.calls += 1
        raise StorageError("bucket unavailable", {"path": path})

    def store_data_url(self, data_url, path):
        self.calls += 1
        raise StorageError("bucket unavailable", {"path": path})


@pytest.fixture
def minting(settings, storage, ledger_factory):
    return MintingService(settings, storage=storage, ledger_factory=ledger_factory)


def chain_height(ledger_factory, tree_id):
    with ledger_factory() as ledger:
        return ledger.chain.head(tree_id).block_height


class TestNeedsUpload:
    @pytest.mark.parametrize("image,expected", [
        (b"\x89PNG", True),
        (b"", False),
        (PNG_DATA_URL, True),
        ("https://cdn.test/x.png", False),
        ("", False),
        (None, False),
    ])
    def test_classification(self, image, expected):
        assert needs_upload(image) is expected


class TestMintPulse:
    def test_standard_pulse(self, minting, ledger_factory, root_tree, alice):
        block = minting.mint_pulse(root_tree.uuid, PulseType.STANDARD, "Spring", "Buds", alice)

        assert block.height == 1
        assert block.type == PulseType.STANDARD
        assert block.image_url is None
        assert chain_height(ledger_factory, root_tree.uuid) == 1

    def test_pulse_type_as_string(self, minting, root_tree, alice):
        block = minting.mint_pulse(root_tree.uuid, "STANDARD", "Spring", "Buds", alice)
        assert block.type == PulseType.STANDARD

    def test_unknown_pulse_type(self, minting, ledger_factory, root_tree, alice):
        with pytest.raises(ValidationError):
            minting.mint_pulse(root_tree.uuid, "HARVEST", "t", "b", alice)
        assert chain_height(ledger_factory, root_tree.uuid) == 0

    def test_growth_with_bytes(self, minting, ledger_factory, root_tree, alice, tmp_path):
        block = minting.mint_pulse(
            root_tree.uuid, PulseType.GROWTH, "Week 1", "Sprouted", alice, image=b"\x89PNG-bytes"
        )

        prefix = f"https://cdn.test/lifeseed/pulses/{root_tree.uuid}/"
        assert block.image_url.startswith(prefix)
        stored = tmp_path / "blobs" / "pulses" / root_tree.uuid / block.image_url[len(prefix):]
        assert stored.read_bytes() == b"\x89PNG-bytes"
        assert block.payload["image"] == block.image_url

        with ledger_factory() as ledger:
            assert ledger.lifetree.get_by_id(root_tree.uuid).image_url == block.image_url

    def test_growth_with_data_url(self, minting, root_tree, alice):
        block = minting.mint_pulse(
            root_tree.uuid, PulseType.GROWTH, "Week 2", "Leaves", alice, image=PNG_DATA_URL
        )
        assert block.image_url.endswith(".png")

    def test_stored_url_passes_through(self, minting, root_tree, alice):
        block = minting.mint_pulse(
            root_tree.uuid, PulseType.GROWTH, "Week 3", "Taller", alice,
            image="https://elsewhere.test/w3.jpg",
        )
        assert block.image_url == "https://elsewhere.test/w3.jpg"

    def test_growth_without_image(self, minting, ledger_factory, root_tree, alice):
        with pytest.raises(ValidationError):
            minting.mint_pulse(root_tree.uuid, PulseType.GROWTH, "Week 1", "No photo", alice)
        assert chain_height(ledger_factory, root_tree.uuid) == 0

    def test_missing_tree_skips_upload(self, minting, alice, tmp_path, ledger_factory):
        with pytest.raises(TreeNotFoundError):
            minting.mint_pulse("missing", PulseType.GROWTH, "t", "b", alice, image=b"data")
        assert not (tmp_path / "blobs").exists()

    @pytest.mark.parametrize("tree_id", ["", "  "])
    def test_blank_tree_id(self, minting, alice, tree_id):
        with pytest.raises(ValidationError):
            minting.mint_pulse(tree_id, PulseType.STANDARD, "t", "b", alice)

    def test_blank_author(self, minting, root_tree):
        with pytest.raises(ValidationError):
            minting.mint_pulse(root_tree.uuid, PulseType.STANDARD, "t", "b", Lightseed(" "))


class TestStorageFailures:
    def test_failed_upload_leaves_chain_untouched(self, settings, ledger_factory, root_tree, alice):
        storage = FailingStorage()
        service = MintingService(settings, storage=storage, ledger_factory=ledger_factory)

        with pytest.raises(StorageError):
            service.mint_pulse(root_tree.uuid, PulseType.GROWTH, "t", "b", alice, image=b"data")

        assert storage.calls == 1
        with ledger_factory() as ledger:
            assert ledger.chain.head(root_tree.uuid).latest_hash == root_tree.genesis_hash
            assert ledger.chain.blocks(root_tree.uuid) == []

    def test_no_storage_configured(self, settings, ledger_factory, root_tree, alice):
        service = MintingService(settings, ledger_factory=ledger_factory)
        with pytest.raises(StorageError):
            service.mint_pulse(root_tree.uuid, PulseType.GROWTH, "t", "b", alice, image=PNG_DATA_URL)
        assert chain_height(ledger_factory, root_tree.uuid) == 0

    def test_malformed_data_url(self, minting, ledger_factory, root_tree, alice):
        with pytest.raises(StorageError):
            minting.mint_pulse(
                root_tree.uuid, PulseType.GROWTH, "t", "b", alice, image="data:image/png;base64,@@@"
            )
        assert chain_height(ledger_factory, root_tree.uuid) == 0


class TestGenesisProtection:
    @pytest.fixture
    def genesis(self, ledger_factory):
        with ledger_factory() as ledger:
            return seed.ensure_genesis(ledger)

    def test_growth_by_non_steward_refused(self, minting, ledger_factory, genesis, alice):
        with pytest.raises(PermissionDenied):
            minting.mint_pulse(
                genesis.uuid, PulseType.GROWTH, "Cover", "New", alice, image="https://img.test/c.png"
            )
        assert chain_height(ledger_factory, genesis.uuid) == 0

    def test_standard_by_anyone(self, minting, genesis, alice):
        block = minting.mint_pulse(genesis.uuid, PulseType.STANDARD, "Hello", "Light", alice)
        assert block.lifetree_uuid == genesis.uuid

    def test_growth_by_steward(self, settings, ledger_factory, genesis):
        settings.steward_ids = ("steward",)
        service = MintingService(settings, ledger_factory=ledger_factory)
        block = service.mint_pulse(
            genesis.uuid, PulseType.GROWTH, "Cover", "New", Lightseed("steward"),
            image="https://img.test/c.png",
        )
        assert block.height == 1

    def test_refused_before_upload(self, minting, genesis, alice, tmp_path):
        with pytest.raises(PermissionDenied):
            minting.mint_pulse(genesis.uuid, PulseType.GROWTH, "Cover", "New", alice, image=b"img")
        assert not (tmp_path / "blobs").exists()


class TestAppendRetry:
    def test_retry_after_lost_race(self, settings, storage, racing_clock, ledger_factory, root_tree, alice):
        racing = racing_clock(root_tree.uuid, rounds=1)
        service = MintingService(
            settings, storage=storage, ledger_factory=lambda: get_ledger(settings, clock=racing)
        )

        block = service.mint_pulse(root_tree.uuid, PulseType.STANDARD, "Mine", "Eventually", alice)

        assert len(racing.rival_blocks) == 1
        assert block.height == 2
        assert block.previous_hash == racing.rival_blocks[0].hash
        with ledger_factory() as ledger:
            assert ledger.chain.verify(root_tree.uuid).valid

    def test_retries_exhausted(self, settings, racing_clock, ledger_factory, root_tree, alice):
        settings.max_append_retries = 3
        racing = racing_clock(root_tree.uuid, rounds=None)
        service = MintingService(settings, ledger_factory=lambda: get_ledger(settings, clock=racing))

        with pytest.raises(ConcurrentAppendError):
            service.mint_pulse(root_tree.uuid, PulseType.STANDARD, "Mine", "Never", alice)

        assert len(racing.rival_blocks) == 3
        with ledger_factory() as ledger:
            blocks = ledger.chain.blocks(root_tree.uuid)
            assert [b.author_id for b in blocks] == ["bob", "bob", "bob"]
            assert ledger.chain.verify(root_tree.uuid).valid


class TestWithAppendRetry:
    def test_returns_first_success(self):
        calls = []

        def operation():
            calls.append(1)
            if len(calls) < 2:
                raise ConcurrentAppendError("moved", tree_uuid="t1")
            return "ok"

        assert with_append_retry(operation, 3) == "ok"
        assert len(calls) == 2

    def test_reraises_after_last_attempt(self):
        calls = []

        def operation():
            calls.append(1)
            raise ConcurrentAppendError("moved", tree_uuid="t1")

        with pytest.raises(ConcurrentAppendError):
            with_append_retry(operation, 2)
        assert len(calls) == 2

    def test_other_errors_not_retried(self):
        calls = []

        def operation():
            calls.append(1)
            raise TreeNotFoundError("gone")

        with pytest.raises(TreeNotFoundError):
            with_append_retry(operation, 5)
        assert len(calls) == 1

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            with_append_retry(lambda: None, 0)


class TestVisionsAndEngagement:
    def test_create_vision_with_image(self, minting, root_tree, alice):
        vision = minting.create_vision(
            root_tree.uuid, alice, "Orchard", "Plant fruit trees",
            link="https://orchard.test", image=PNG_DATA_URL,
        )
        assert vision.title == "Orchard"
        assert vision.link == "https://orchard.test"
        assert vision.image_url.startswith(f"https://cdn.test/lifeseed/visions/{root_tree.uuid}/")

    def test_vision_leaves_chain_alone(self, minting, ledger_factory, root_tree, alice):
        minting.create_vision(root_tree.uuid, alice, "Orchard", "Plant fruit trees")
        assert chain_height(ledger_factory, root_tree.uuid) == 0

    def test_vision_requires_title(self, minting, root_tree, alice):
        with pytest.raises(ValidationError):
            minting.create_vision(root_tree.uuid, alice, " ", "body")

    def test_vision_on_missing_tree(self, minting, alice):
        with pytest.raises(TreeNotFoundError):
            minting.create_vision("missing", alice, "Orchard", "body")

    def test_love_toggles(self, minting, root_tree, alice):
        block = minting.mint_pulse(root_tree.uuid, PulseType.STANDARD, "t", "b", alice)

        assert minting.love(block.uuid, "bob") == 1
        assert minting.is_loved(block.uuid, "bob") is True
        assert minting.love(block.uuid, "carol") == 2
        assert minting.love(block.uuid, "bob") == 1
        assert minting.is_loved(block.uuid, "bob") is False

    def test_love_missing_pulse(self, minting):
        with pytest.raises(ResourceNotFound):
            minting.love("missing", "bob")

    def test_comments(self, minting, ledger_factory, root_tree, alice, bob):
        block = minting.mint_pulse(root_tree.uuid, PulseType.STANDARD, "t", "b", alice)

        comment = minting.comment(block.uuid, bob, "  Beautiful  ")
        assert comment.body == "Beautiful"
        assert comment.author_name == "Bob"

        with ledger_factory() as ledger:
            assert ledger.chain.get_block(block.uuid).comment_count == 1
            assert [c.uuid for c in ledger.social.comments(block.uuid)] == [comment.uuid]

    def test_empty_comment(self, minting, root_tree, alice, bob):
        block = minting.mint_pulse(root_tree.uuid, PulseType.STANDARD, "t", "b", alice)
        with pytest.raises(ValidationError):
            minting.comment(block.uuid, bob, "   ")
