from unittest.mock import MagicMock

from app.services.generation.layers import build_layers
from app.storage.base import StorageError, StoredAsset


def _storage():
    storage = MagicMock()
    storage.upload_data_url.return_value = StoredAsset(
        path="sessions/s1/photo-1.png",
        public_url="https://cdn/assets/sessions/s1/photo-1.png",
    )
    storage.resolve_public_url.side_effect = lambda v: v if v.startswith("http") else f"https://cdn/assets/{v}"
    return storage


class TestBuildLayers:
    def test_text_layers(self):
        layers = build_layers({"title": "Sale", "price": 500, "note": None}, set(), "s1", _storage())
        assert layers == {"title": {"text": "Sale"}, "price": {"text": "500"}, "note": {"text": ""}}

    def test_data_url_is_uploaded(self):
        storage = _storage()
        layers = build_layers({"photo": "data:image/png;base64,iVBORw0KGgo="}, {"photo"}, "s1", storage)
        assert layers["photo"] == {"image": "https://cdn/assets/sessions/s1/photo-1.png"}
        storage.upload_data_url.assert_called_once_with(
            "data:image/png;base64,iVBORw0KGgo=", session_id="s1", field_name="photo"
        )

    def test_storage_path_and_absolute_url(self):
        layers = build_layers(
            {"logo": "uploads/logo.png", "bg": "https://images.example.com/bg.jpg"},
            {"logo", "bg"},
            "s1",
            _storage(),
        )
        assert layers["logo"] == {"image": "https://cdn/assets/uploads/logo.png"}
        assert layers["bg"] == {"image": "https://images.example.com/bg.jpg"}

    def test_non_string_image_is_empty(self):
        layers = build_layers({"photo": {"file": "x"}, "other": ""}, {"photo", "other"}, "s1", _storage())
        assert layers == {"photo": {"image": ""}, "other": {"image": ""}}

    def test_failed_upload_degrades_to_empty_layer(self):
        storage = _storage()
        storage.upload_data_url.side_effect = StorageError("Invalid image DataURL")
        layers = build_layers(
            {"photo": "data:image/gif;base64,AAAA", "title": "Hi"},
            {"photo"},
            "s1",
            storage,
        )
        assert layers == {"photo": {"image": ""}, "title": {"text": "Hi"}}
