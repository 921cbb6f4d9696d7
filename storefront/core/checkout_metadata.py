"""
Cart and shipping details carried through Stripe Checkout metadata.

Stripe limits metadata values to 500 characters, so the cart is written as
compact ``<product hex>:<quantity>`` pairs spread over ``cart``,
``cart_1``, ``cart_2``... as needed.
"""
import json
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

METADATA_VALUE_LIMIT = 500

CartLine = Tuple[uuid.UUID, int]


def encode_cart(lines: List[CartLine]) -> Dict[str, str]:
    chunks: List[str] = []
    current = ""
    for product_id, quantity in lines:
        entry = f"{product_id.hex}:{quantity}"
        candidate = f"{current},{entry}" if current else entry
        if len(candidate) > METADATA_VALUE_LIMIT:
            chunks.append(current)
            candidate = entry
        current = candidate
    if current:
        chunks.append(current)
    return {("cart" if i == 0 else f"cart_{i}"): chunk for i, chunk in enumerate(chunks)}


def decode_cart(metadata: Mapping[str, Any]) -> List[CartLine]:
    """
    Raises:
        ValueError: If an entry is malformed
    """
    keys = ["cart"]
    index = 1
    while f"cart_{index}" in metadata:
        keys.append(f"cart_{index}")
        index += 1

    lines: List[CartLine] = []
    for key in keys:
        for entry in filter(None, str(metadata.get(key) or "").split(",")):
            product_hex, quantity = entry.split(":")
            lines.append((uuid.UUID(hex=product_hex), int(quantity)))
    return lines


def encode_shipping(address: Optional[Mapping[str, Any]]) -> Optional[str]:
    """JSON for the metadata, or None when absent or too long to fit."""
    if not address:
        return None
    encoded = json.dumps(dict(address), separators=(",", ":"))
    return encoded if len(encoded) <= METADATA_VALUE_LIMIT else None


def decode_shipping(metadata: Mapping[str, Any]) -> Dict[str, Any]:
    try:
        value = json.loads(metadata.get("shipping") or "{}")
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}
