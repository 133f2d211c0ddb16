"""
Placid layer payload from the customer's form input.
Image layers need a public URL; text layers take the value as a string.
"""
import logging
from typing import Any

from app.storage.base import AssetStorage, StorageError

logger = logging.getLogger(__name__)


def build_image_layer(value: Any, field_name: str, session_id: str, storage: AssetStorage) -> dict[str, str]:
    if not isinstance(value, str) or not value:
        return {"image": ""}
    if value.startswith("data:image"):
        asset = storage.upload_data_url(value, session_id=session_id, field_name=field_name)
        return {"image": asset.public_url}
    # Storage path or absolute URL
    return {"image": storage.resolve_public_url(value)}


def build_text_layer(value: Any) -> dict[str, str]:
    return {"text": "" if value is None else str(value)}


def build_layers(
    input_data: dict[str, Any],
    image_fields: set[str],
    session_id: str,
    storage: AssetStorage,
) -> dict[str, dict[str, str]]:
    """A layer that fails to build is sent empty instead of failing the render."""
    layers: dict[str, dict[str, str]] = {}
    for field_name, value in input_data.items():
        is_image = field_name in image_fields
        try:
            if is_image:
                layers[field_name] = build_image_layer(value, field_name, session_id, storage)
            else:
                layers[field_name] = build_text_layer(value)
        except (StorageError, OSError, ValueError) as e:
            logger.warning(
                "placid_layer_degraded",
                extra={"session_id": session_id, "error": f"{field_name}: {e}"},
            )
            layers[field_name] = {"image": ""} if is_image else {"text": ""}
    return layers
