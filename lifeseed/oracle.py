"""Generative AI helpers ("oracle").

The oracle suggests post titles, tree bios and vision images. It is never
needed for ledger correctness: with no client configured, or when the
client fails, every helper degrades to "" (text) or None (image) and logs
a warning instead of raising.
"""

import logging
import re
from typing import Protocol

logger = logging.getLogger(__name__)

TITLE_PROMPT = (
    "Generate a short, engaging title (maximum 10 words) for the following post body. "
    "Do not use quotation marks in the title:\n\n---\n{body}\n---"
)

BIO_PROMPT = (
    "You are LifeSeed AI, a poetic and nature-loving assistant.\n"
    'The user wants to grow a "Lifetree" (a digital profile representation of their soul).\n'
    'They provided this seed thought: "{seed}".\n\n'
    "Write a short (max 40 words), mystical, and nature-inspired bio/description for their "
    "Lifetree.\nIt should sound organic, peaceful, and connected to the earth."
)

IMAGE_PROMPT = "A mystical, nature-inspired, abstract painting representing: {prompt}"

_QUOTES = re.compile(r"[\"']")


class OracleClient(Protocol):
    def complete(self, prompt: str) -> str: ...
    def generate_image(self, prompt: str) -> str | None: ...


class Oracle:
    """Best-effort wrapper around an OracleClient."""

    def __init__(self, client: OracleClient | None = None):
        self._client = client

    @property
    def available(self) -> bool:
        return self._client is not None

    def _complete(self, prompt: str, purpose: str) -> str:
        if self._client is None:
            logger.warning("Oracle client not configured; skipping %s", purpose)
            return ""
        try:
            return (self._client.complete(prompt) or "").strip()
        except Exception as e:
            logger.warning("Oracle failed to generate %s: %s", purpose, e)
            return ""

    def generate_post_title(self, body: str) -> str:
        """Suggest a title (max 10 words, no quotes) for a pulse body."""
        if not body or not body.strip():
            return ""
        title = self._complete(TITLE_PROMPT.format(body=body), "post title")
        return _QUOTES.sub("", title).strip()

    def generate_tree_bio(self, seed: str) -> str:
        """Suggest a short poetic bio for a Lifetree from a seed thought."""
        if not seed or not seed.strip():
            return ""
        return self._complete(BIO_PROMPT.format(seed=seed), "tree bio")

    def generate_vision_image(self, prompt: str) -> str | None:
        """Generate a vision image.

        Returns:
            A data: URL (to be persisted through BlobStorage) or None
        """
        if not prompt or not prompt.strip():
            return None
        if self._client is None:
            logger.warning("Oracle client not configured; skipping vision image")
            return None
        try:
            image = self._client.generate_image(IMAGE_PROMPT.format(prompt=prompt))
        except Exception as e:
            logger.warning("Oracle failed to generate vision image: %s", e)
            return None
        if not image:
            logger.warning("Oracle returned no image data")
            return None
        return image
