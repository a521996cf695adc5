"""
Unit tests for AssetStore loading, failure reporting and caching.
"""
import numpy as np
import pytest

from tests.conftest import BACKGROUND_SIZE, asset_filenames
from tote_mockup.assets import AssetName, AssetStore
from tote_mockup.errors import AssetMissing


@pytest.mark.unit
class TestAssetStore:
    def test_load_set_decodes_every_layer(self, asset_set):
        assert asset_set.background.size == BACKGROUND_SIZE
        assert asset_set.body_mask.mode == "RGBA"
        assert asset_set.handles_mask.size == BACKGROUND_SIZE
        assert asset_set.shadow.getpixel((0, 0)) == (0, 0, 0, 0)

    def test_missing_file_raises_asset_missing(self, assets_dir, asset_store):
        asset_store.path_for(AssetName.SHADOW).unlink()

        with pytest.raises(AssetMissing) as exc_info:
            asset_store.load_set()

        assert exc_info.value.name == "shadow"
        assert exc_info.value.path == assets_dir / "tote-shadows.png.png"
        assert "file not found" in str(exc_info.value)
        assert not exc_info.value.is_client_error

    def test_corrupt_file_raises_asset_missing(self, asset_store):
        asset_store.path_for(AssetName.HIGHLIGHT).write_bytes(b"\x89PNG broken")

        with pytest.raises(AssetMissing, match="undecodable"):
            asset_store.load(AssetName.HIGHLIGHT)

    def test_requires_every_file_name(self, assets_dir):
        filenames = asset_filenames()
        del filenames[AssetName.HANDLES_MASK]

        with pytest.raises(ValueError, match="handles_mask"):
            AssetStore(assets_dir, filenames)

    def test_uncached_store_rereads_files(self, assets_dir):
        store = AssetStore(assets_dir, asset_filenames(), cache=False)
        store.load(AssetName.BACKGROUND)
        store.path_for(AssetName.BACKGROUND).unlink()

        with pytest.raises(AssetMissing):
            store.load(AssetName.BACKGROUND)

    def test_cache_serves_copies(self, assets_dir):
        store = AssetStore(assets_dir, asset_filenames(), cache=True)
        first = store.load(AssetName.BACKGROUND)
        first.paste((0, 0, 0), (0, 0, 10, 10))
        store.path_for(AssetName.BACKGROUND).unlink()

        second = store.load(AssetName.BACKGROUND)

        assert second is not first
        assert np.asarray(second.convert("RGB"))[0, 0].tolist() == [200, 200, 200]

    def test_clear_cache_forces_reload(self, assets_dir):
        store = AssetStore(assets_dir, asset_filenames(), cache=True)
        store.load(AssetName.BACKGROUND)
        store.clear_cache()
        store.path_for(AssetName.BACKGROUND).unlink()

        with pytest.raises(AssetMissing):
            store.load(AssetName.BACKGROUND)
