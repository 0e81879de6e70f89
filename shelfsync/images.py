"""Image download, squaring and content hashing."""

from __future__ import annotations

import base64
import hashlib
import io
import logging

import httpx
from PIL import Image, ImageOps

from shelfsync.utils.retry import retry_async

logger = logging.getLogger(__name__)

# Some CDNs reject requests without a user agent.
USER_AGENT = "shelfsync/0.4"
DOWNLOAD_TIMEOUT = 5.0
CANVAS_COLOR = (255, 255, 255, 255)


def square_image(image: Image.Image) -> Image.Image:
    """Pad onto a white square canvas as wide as the longest side."""
    width, height = image.size
    if width == height:
        return image
    side = max(width, height)
    return ImageOps.pad(image.convert("RGBA"), (side, side), color=CANVAS_COLOR)


def content_hash(image: Image.Image) -> str:
    """Hash decoded pixels so re-encoded copies of the same picture compare equal."""
    rgba = image.convert("RGBA")
    digest = hashlib.sha256()
    digest.update(f"{rgba.width}x{rgba.height}".encode())
    digest.update(rgba.tobytes())
    return digest.hexdigest()


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def encode_attachment(image: Image.Image) -> str:
    return base64.b64encode(encode_png(image)).decode("ascii")


class ImageFetcher:
    def __init__(self, *, session: httpx.AsyncClient | None = None) -> None:
        self._session = session or httpx.AsyncClient(
            timeout=DOWNLOAD_TIMEOUT, headers={"User-Agent": USER_AGENT}, follow_redirects=True
        )

    async def close(self) -> None:
        await self._session.aclose()

    async def download(self, url: str) -> Image.Image:
        response = await retry_async(self._session.get)(url)
        response.raise_for_status()
        image = Image.open(io.BytesIO(response.content))
        image.load()
        return image

    async def download_square(self, url: str) -> Image.Image:
        logger.debug("Downloading image %s", url)
        return square_image(await self.download(url))
