"""Canonical record schemas: single source of truth for data shapes across the service."""

import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Zone(str, Enum):
    ZONE01 = "Zone01"
    ZONE02 = "Zone02"
    ZONE03 = "Zone03"
    ZONE04 = "Zone04"

    @property
    def label(self) -> str:
        return ZONE_LABELS[self]


ZONE_LABELS = {
    Zone.ZONE01: "Kitchen01",
    Zone.ZONE02: "Dining01",
    Zone.ZONE03: "Hallway01",
    Zone.ZONE04: "Store01",
}


class Switch(str, Enum):
    ON = "on"
    OFF = "off"


class CleaningStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "inprogress"
    DONE = "done"


# Declared [min, max] domain of every bounded numeric field.
BOUNDS: dict[str, tuple[float, float]] = {
    "floor": (0, 3),
    "temperature": (15.0, 45.0),
    "humidity": (30.0, 90.0),
    "co2_level": (300.0, 1000.0),
    "light_level": (0.0, 2000.0),
    "occupancy_count": (0, 50),
    "energy_consumed_kwh": (0.0, 500.0),
    "battery_backup_level": (0.0, 100.0),
}


def _new_id() -> str:
    return uuid.uuid4().hex


class Sample(BaseModel):
    """One synthetic sensor reading for a zone at a point in time."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    zone: Zone
    floor: int = Field(ge=BOUNDS["floor"][0], le=BOUNDS["floor"][1])
    timestamp: float = Field(description="Unix epoch in milliseconds")
    temperature: float = Field(ge=BOUNDS["temperature"][0], le=BOUNDS["temperature"][1])
    humidity: float = Field(ge=BOUNDS["humidity"][0], le=BOUNDS["humidity"][1])
    co2_level: float = Field(ge=BOUNDS["co2_level"][0], le=BOUNDS["co2_level"][1])
    light_level: float = Field(ge=BOUNDS["light_level"][0], le=BOUNDS["light_level"][1])
    occupancy_count: int = Field(ge=BOUNDS["occupancy_count"][0], le=BOUNDS["occupancy_count"][1])
    motion_detected: bool = False
    power_status: Switch = Switch.ON
    air_purifier_status: Switch = Switch.ON
    energy_consumed_kwh: float = Field(
        ge=BOUNDS["energy_consumed_kwh"][0], le=BOUNDS["energy_consumed_kwh"][1]
    )
    battery_backup_level: float = Field(
        ge=BOUNDS["battery_backup_level"][0], le=BOUNDS["battery_backup_level"][1]
    )
    cleaning_status: CleaningStatus = CleaningStatus.PENDING
    last_cleaned_timestamp: float | None = None
    fire_alarm_triggered: bool = False
    gas_leak_detected: bool = False

    @field_validator("motion_detected", "fire_alarm_triggered", "gas_leak_detected", mode="before")
    @classmethod
    def _yes_no(cls, v):
        # Rows written by the dashboard store these flags as "yes"/"no".
        if isinstance(v, str):
            return v.strip().lower() in ("yes", "true", "1")
        return v

    def metric(self, name: str) -> float:
        return float(getattr(self, name))


class FoodOrder(BaseModel):
    """One row of food history: a dish prepared and consumed at a point in time."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    dish_name: str
    timestamp: float = Field(description="Unix epoch in milliseconds")
    quantity_prepared: int = 0
    quantity_consumed: int = 0
    water_consumption: float = 0.0
    gas_consumption: float = 0.0
    order_price: float = 0.0
    food_rating: float = 0.0

    @field_validator(
        "quantity_prepared",
        "quantity_consumed",
        "water_consumption",
        "gas_consumption",
        "order_price",
        "food_rating",
        mode="before",
    )
    @classmethod
    def _missing_is_zero(cls, v):
        return 0 if v is None else v


class AnomalyPrediction(BaseModel):
    """Verdict returned by the remote anomaly classifier for one sample."""

    iot_data_id: str
    zone: str
    prediction: str
    anomaly_probability: float = 0.0
    normal_probability: float = 0.0
    risk_level: str = "Low"
    input_data: dict = Field(default_factory=dict)
    api_timestamp: str = ""
    timestamp: float = Field(default=0.0, description="Unix epoch in milliseconds")

    @property
    def is_anomaly(self) -> bool:
        return self.prediction.lower() == "anomaly"

    def dedup_key(self) -> str:
        return f"{self.iot_data_id}_{self.api_timestamp}_{self.prediction}"
