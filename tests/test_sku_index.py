import pytest

from shelfsync.index import SkuEntry


@pytest.mark.asyncio
async def test_put_get_delete(sku_index):
    assert await sku_index.get("A") is None
    await sku_index.put("A", 1, 10)
    assert await sku_index.get("A") == SkuEntry("A", 1, 10)
    await sku_index.put("A", 2, 20)
    assert await sku_index.get("A") == SkuEntry("A", 2, 20)
    assert await sku_index.delete("A") is True
    assert await sku_index.delete("A") is False
    assert await sku_index.get("A") is None
