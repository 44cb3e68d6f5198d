from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from geotoken.content.schema import validate_save_payload
from geotoken.sim.grid import LatLng
from geotoken.sim.hash import save_hash
from geotoken.sim.player import PlayerState
from geotoken.sim.world import OverrideStore

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
SAVE_KEY = "geoGameSave"
CANONICAL_JSON_SEPARATORS = (",", ":")


class CorruptSave(ValueError):
    """Persisted state could not be parsed or failed validation."""


def build_save_payload(player: PlayerState, overrides: OverrideStore) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "playerLat": player.lat,
        "playerLng": player.lng,
        "heldToken": player.held_token,
        "useGeolocation": player.use_geolocation,
        "overrides": overrides.to_dict(),
    }
    payload["save_hash"] = save_hash(payload)
    return payload


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, separators=CANONICAL_JSON_SEPARATORS, sort_keys=True)


def serialize(player: PlayerState, overrides: OverrideStore) -> str:
    payload = build_save_payload(player, overrides)
    validate_save_payload(payload)
    return _canonical_json(payload)


def deserialize(blob: str | bytes) -> tuple[PlayerState, OverrideStore]:
    try:
        payload = json.loads(blob)
    except (TypeError, ValueError, RecursionError) as exc:
        raise CorruptSave(f"save is not valid JSON: {exc}") from exc

    try:
        validate_save_payload(payload)
    except ValueError as exc:
        raise CorruptSave(str(exc)) from exc

    expected_hash = payload["save_hash"]
    actual_hash = save_hash(payload)
    if expected_hash != actual_hash:
        raise CorruptSave(f"save_hash mismatch (stored={expected_hash}, recomputed={actual_hash})")

    try:
        player = PlayerState(
            lat=payload["playerLat"],
            lng=payload["playerLng"],
            held_token=payload["heldToken"],
            use_geolocation=payload["useGeolocation"],
        )
        overrides = OverrideStore.from_dict(payload["overrides"])
    except ValueError as exc:
        raise CorruptSave(str(exc)) from exc
    return player, overrides


class SaveStore:
    """Key-value storage contract for save blobs."""

    def read(self, key: str) -> str | None:
        raise NotImplementedError

    def write(self, key: str, blob: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemorySaveStore(SaveStore):
    def __init__(self) -> None:
        self.blobs: dict[str, str] = {}
        self.write_count = 0

    def read(self, key: str) -> str | None:
        return self.blobs.get(key)

    def write(self, key: str, blob: str) -> None:
        self.blobs[key] = blob
        self.write_count += 1

    def delete(self, key: str) -> None:
        self.blobs.pop(key, None)


class JsonFileSaveStore(SaveStore):
    """One JSON file per key under ``directory``, replaced atomically."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        if not key or any(sep in key for sep in ("/", "\\")) or key in {".", ".."}:
            raise ValueError(f"invalid save key: {key!r}")
        return self.directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, blob: str) -> None:
        destination = self.path_for(key)
        destination.parent.mkdir(parents=True, exist_ok=True)

        temp_path: Path | None = None
        try:
            with NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=destination.parent,
                delete=False,
                suffix=".tmp",
            ) as temp_file:
                temp_path = Path(temp_file.name)
                temp_file.write(blob)
                temp_file.flush()
                os.fsync(temp_file.fileno())
            os.replace(temp_path, destination)
        except Exception:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


def save_game(store: SaveStore, player: PlayerState, overrides: OverrideStore, *, key: str = SAVE_KEY) -> None:
    store.write(key, serialize(player, overrides))


def load_game(
    store: SaveStore,
    *,
    origin: LatLng,
    key: str = SAVE_KEY,
    use_geolocation: bool = True,
) -> tuple[PlayerState, OverrideStore, bool]:
    """Load a save, or start fresh when it is missing or corrupt.

    Returns ``(player, overrides, loaded)`` where ``loaded`` tells whether the
    state came from the store.
    """
    try:
        blob = store.read(key)
    except UnicodeDecodeError as exc:
        logger.warning("ignoring corrupt save %r: %s", key, exc)
        blob = None
    except OSError as exc:
        logger.warning("could not read save %r: %s; starting fresh", key, exc)
        blob = None

    if blob is None:
        return PlayerState.fresh(origin, use_geolocation=use_geolocation), OverrideStore(), False

    try:
        player, overrides = deserialize(blob)
    except CorruptSave as exc:
        logger.warning("ignoring corrupt save %r: %s", key, exc)
        return PlayerState.fresh(origin, use_geolocation=use_geolocation), OverrideStore(), False
    return player, overrides, True
