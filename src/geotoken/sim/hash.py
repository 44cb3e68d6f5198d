from __future__ import annotations

import hashlib
import json
from typing import Any

from geotoken.sim.world import OverrideStore

SAVE_HASH_FIELDS = ("schema_version", "playerLat", "playerLng", "heldToken", "useGeolocation", "overrides")


def _canonical_digest(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def overrides_hash(overrides: OverrideStore) -> str:
    return _canonical_digest(overrides.to_dict())


def save_hash(payload: dict[str, Any]) -> str:
    return _canonical_digest({name: payload[name] for name in SAVE_HASH_FIELDS})
