from __future__ import annotations

import math
from typing import Any

from geotoken.sim.grid import CELL_KEY_PATTERN

SUPPORTED_SCHEMA_VERSIONS = {1}
REQUIRED_SAVE_FIELDS = (
    "schema_version",
    "playerLat",
    "playerLng",
    "heldToken",
    "useGeolocation",
    "overrides",
    "save_hash",
)


def _is_token(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value > 0 and (value & (value - 1)) == 0


def _validate_finite_number(value: Any, *, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be a number")
    try:
        finite = math.isfinite(value)
    except OverflowError as exc:
        raise ValueError(f"{field_name} is out of range") from exc
    if not finite:
        raise ValueError(f"{field_name} must be finite")


def _validate_optional_token(value: Any, *, field_name: str) -> None:
    if value is not None and not _is_token(value):
        raise ValueError(f"{field_name} must be null or a positive power of two")


def _validate_cell_key(key: Any, *, field_name: str) -> None:
    if not isinstance(key, str):
        raise ValueError(f"{field_name} keys must be strings")
    if CELL_KEY_PATTERN.fullmatch(key) is None:
        raise ValueError(f"{field_name} key {key!r} must look like '<i>,<j>'")


def validate_overrides_payload(overrides: Any, *, field_name: str = "overrides") -> None:
    if not isinstance(overrides, dict):
        raise ValueError(f"{field_name} must be an object")
    for key, record in overrides.items():
        _validate_cell_key(key, field_name=field_name)
        if not isinstance(record, dict):
            raise ValueError(f"{field_name}[{key}] must be an object")
        if "tokenValue" not in record:
            raise ValueError(f"{field_name}[{key}] missing tokenValue")
        _validate_optional_token(record["tokenValue"], field_name=f"{field_name}[{key}].tokenValue")


def validate_save_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise ValueError("save payload must be an object")

    missing = [name for name in REQUIRED_SAVE_FIELDS if name not in payload]
    if missing:
        raise ValueError(f"save payload missing fields: {missing}")

    schema_version = payload["schema_version"]
    if isinstance(schema_version, bool) or not isinstance(schema_version, int):
        raise ValueError("schema_version must be an integer")
    if schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"unsupported schema_version: {schema_version}")

    _validate_finite_number(payload["playerLat"], field_name="playerLat")
    _validate_finite_number(payload["playerLng"], field_name="playerLng")
    _validate_optional_token(payload["heldToken"], field_name="heldToken")
    if not isinstance(payload["useGeolocation"], bool):
        raise ValueError("useGeolocation must be a boolean")
    validate_overrides_payload(payload["overrides"])
    if not isinstance(payload["save_hash"], str) or not payload["save_hash"]:
        raise ValueError("save_hash must be a non-empty string")
