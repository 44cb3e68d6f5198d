from __future__ import annotations

import math
from dataclasses import dataclass

from geotoken.sim.grid import LatLng
from geotoken.sim.world import require_token


@dataclass
class PlayerState:
    lat: float
    lng: float
    held_token: int | None = None
    use_geolocation: bool = True

    def __post_init__(self) -> None:
        for field_name in ("lat", "lng"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValueError(f"{field_name} must be a finite number")
            setattr(self, field_name, float(value))
        require_token(self.held_token, field_name="held_token")
        if not isinstance(self.use_geolocation, bool):
            raise ValueError("use_geolocation must be a boolean")

    @property
    def position(self) -> LatLng:
        return LatLng(self.lat, self.lng)

    def move_to(self, lat: float, lng: float) -> None:
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise ValueError("position must be finite")
        self.lat = float(lat)
        self.lng = float(lng)

    @classmethod
    def fresh(cls, origin: LatLng, *, use_geolocation: bool = True) -> "PlayerState":
        return cls(lat=origin.lat, lng=origin.lng, held_token=None, use_geolocation=use_geolocation)
