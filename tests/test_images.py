import io

import httpx
import pytest
import respx
from PIL import Image

from conftest import CDN, png_bytes
from shelfsync.images import ImageFetcher, content_hash, encode_png, square_image


def test_square_image_pads_with_white():
    squared = square_image(Image.open(io.BytesIO(png_bytes(size=(40, 20)))))
    assert squared.size == (40, 40)
    assert squared.getpixel((0, 0)) == (255, 255, 255, 255)
    assert squared.getpixel((20, 20))[:3] == (200, 10, 10)


def test_content_hash_ignores_encoding():
    original = Image.open(io.BytesIO(png_bytes()))
    reencoded = Image.open(io.BytesIO(encode_png(original.convert("RGBA"))))
    assert content_hash(original) == content_hash(reencoded)
    assert content_hash(original) != content_hash(Image.open(io.BytesIO(png_bytes(color=(0, 0, 0)))))


@pytest.mark.asyncio
async def test_download_square():
    fetcher = ImageFetcher()
    async with respx.mock() as router:
        router.get(f"{CDN}/tall.png").mock(return_value=httpx.Response(200, content=png_bytes(size=(10, 30))))
        router.get(f"{CDN}/gone.png").mock(return_value=httpx.Response(404))
        image = await fetcher.download_square(f"{CDN}/tall.png")
        with pytest.raises(httpx.HTTPStatusError):
            await fetcher.download(f"{CDN}/gone.png")
    await fetcher.close()
    assert image.size == (30, 30)
