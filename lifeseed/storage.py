"""Blob storage for images.

Images reach the ledger only as permanent references. Callers hand raw
bytes or a data: URL to a BlobStorage, which persists them and returns a
URL; that URL is what gets hashed into blocks and stored on records.

Storage runs before any ledger transaction. A failure raises StorageError
and never returns an empty reference, so a failed upload cannot leave a
block pointing at an image that does not exist.

LocalBlobStorage layout:
- Blob path: {root}/{path}[.ext]
- URL: {base_url}/{path}[.ext] when base_url is set, else a file:// URI
"""

import base64
import binascii
import logging
import mimetypes
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Protocol
from urllib.parse import unquote_to_bytes

from .exceptions import StorageError

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:"


def is_data_url(value: str | None) -> bool:
    return bool(value) and value.startswith(DATA_URL_PREFIX)


def decode_data_url(data_url: str) -> tuple[bytes, str]:
    """Decode an RFC 2397 data URL.

    Handles both ";base64" payloads and percent-encoded text payloads
    (such as inline SVG).

    Returns:
        Tuple of (data, mime_type)

    Raises:
        StorageError: If the URL is not a well-formed data URL
    """
    if not is_data_url(data_url):
        raise StorageError("Not a data URL", {"prefix": (data_url or "")[:16]})

    header, sep, encoded = data_url[len(DATA_URL_PREFIX):].partition(",")
    if not sep:
        raise StorageError("Malformed data URL: missing ','")

    params = header.split(";")
    mime_type = params[0] or "text/plain"
    try:
        if "base64" in params[1:]:
            data = base64.b64decode(encoded, validate=True)
        else:
            data = unquote_to_bytes(encoded)
    except (binascii.Error, ValueError) as e:
        raise StorageError(f"Malformed data URL payload: {e}", {"mime_type": mime_type}) from e

    if not data:
        raise StorageError("Data URL carries no data", {"mime_type": mime_type})
    return data, mime_type


class BlobStorage(Protocol):
    def store_bytes(self, data: bytes, path: str, mime_type: str | None = None) -> str: ...
    def store_data_url(self, data_url: str, path: str) -> str: ...


class LocalBlobStorage:
    """Filesystem-backed BlobStorage."""

    def __init__(self, root: Path, base_url: str | None = None):
        self.root = Path(root).expanduser().resolve()
        self.base_url = base_url.rstrip("/") if base_url else None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "LocalBlobStorage":
        """Storage under settings.blob_dir, served from settings.public_base_url."""
        return cls(settings.blob_dir, base_url=settings.public_base_url)

    def _resolve(self, path: str, mime_type: str | None) -> tuple[Path, str]:
        relative = PurePosixPath(path)
        if not path or relative.is_absolute() or ".." in relative.parts:
            raise StorageError("Invalid blob path", {"path": path})

        if not relative.suffix and mime_type:
            extension = mimetypes.guess_extension(mime_type) or ""
            relative = relative.with_name(relative.name + extension)

        return self.root.joinpath(*relative.parts), relative.as_posix()

    def _url_for(self, target: Path, relative: str) -> str:
        if self.base_url:
            return f"{self.base_url}/{relative}"
        return target.resolve().as_uri()

    def store_bytes(self, data: bytes, path: str, mime_type: str | None = None) -> str:
        """Persist raw bytes under path.

        Args:
            data: Image bytes
            path: Relative blob path (e.g. "pulses/<uuid>")
            mime_type: Optional MIME type, used to pick a file extension

        Returns:
            Permanent URL of the stored blob

        Raises:
            StorageError: If the data is empty, the path is unsafe, or the
                          write fails
        """
        if not data:
            raise StorageError("Refusing to store an empty blob", {"path": path})

        target, relative = self._resolve(path, mime_type)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error("Failed to write blob %s: %s", target, e)
            raise StorageError(f"Failed to store blob: {e}", {"path": relative}) from e

        logger.debug("Stored blob %s (%d bytes)", relative, len(data))
        return self._url_for(target, relative)

    def store_data_url(self, data_url: str, path: str) -> str:
        """Decode a data: URL and persist its payload under path.

        Raises:
            StorageError: If the URL is malformed or the write fails
        """
        data, mime_type = decode_data_url(data_url)
        return self.store_bytes(data, path, mime_type=mime_type)


def persist_image(
    storage: BlobStorage,
    image: bytes | str | None,
    path: str,
) -> str | None:
    """Turn an incoming image into a permanent reference.

    Args:
        storage: Blob storage collaborator
        image: Raw bytes, a data: URL, an already-permanent URL, or None
        path: Relative blob path for new uploads

    Returns:
        Permanent URL, the given URL unchanged, or None when there is no image

    Raises:
        StorageError: If persisting fails
    """
    if image is None or image == "" or image == b"":
        return None
    if isinstance(image, (bytes, bytearray)):
        return storage.store_bytes(bytes(image), path)
    if is_data_url(image):
        return storage.store_data_url(image, path)
    return image
