"""Sensor reading generator: next sample from the previous one via a bounded random walk."""

import random
import time

from simulator.noise import NoiseGenerator
from simulator.schemas import BOUNDS, CleaningStatus, Sample, Switch, Zone

# Half-width of the multiplicative walk per metric (0.05 → value moves within ±5%).
PERTURBATION = {
    "temperature": 0.05,
    "humidity": 0.05,
    "co2_level": 0.05,
    "light_level": 0.15,
    "occupancy_count": 0.25,
    "energy_consumed_kwh": 0.10,
    "battery_backup_level": 0.10,
}

ZONES = list(Zone)
CLEANING_STATUSES = list(CleaningStatus)
FLOORS = list(range(BOUNDS["floor"][0], BOUNDS["floor"][1] + 1))

POWER_ON_PROBABILITY = 0.9
PURIFIER_ON_PROBABILITY = 0.8
MOTION_PROBABILITY = 0.99
CLEANED_PROBABILITY = 0.3


def seed_sample(now: float | None = None) -> Sample:
    """Baseline used when a session has no samples yet."""
    return Sample(
        zone=Zone.ZONE01,
        floor=0,
        timestamp=now if now is not None else time.time() * 1000,
        temperature=24.0,
        humidity=55.0,
        co2_level=450.0,
        light_level=500.0,
        occupancy_count=10,
        motion_detected=True,
        power_status=Switch.ON,
        air_purifier_status=Switch.ON,
        energy_consumed_kwh=5.0,
        battery_backup_level=80.0,
        cleaning_status=CleaningStatus.DONE,
    )


class ReadingGenerator:
    """
    Produces the next Sample from the previous one.

    Every bounded metric takes a multiplicative random step (see PERTURBATION)
    and is clamped into its declared domain. Zone, floor and the on/off and
    cleaning statuses are re-rolled each tick; fire alarm and gas leak are
    independent low-probability draws.
    """

    def __init__(self, rng: random.Random | None = None, rare_event_probability: float = 0.01):
        self._noise = NoiseGenerator(rng)
        self._rare_p = rare_event_probability

    def _walk(self, previous: Sample, metric: str) -> float:
        lo, hi = BOUNDS[metric]
        value = self._noise.proportional(previous.metric(metric), PERTURBATION[metric])
        return self._noise.clamp(value, lo, hi)

    def next_sample(self, previous: Sample | None, now: float | None = None) -> Sample:
        now = now if now is not None else time.time() * 1000
        if previous is None:
            previous = seed_sample(now)

        noise = self._noise
        occupancy = noise.round_half_up(self._walk(previous, "occupancy_count"))
        occupancy = int(noise.clamp(occupancy, *BOUNDS["occupancy_count"]))
        motion = occupancy > 0 and noise.chance(MOTION_PROBABILITY)

        return Sample(
            zone=noise.choice(ZONES),
            floor=noise.choice(FLOORS),
            timestamp=now,
            temperature=round(self._walk(previous, "temperature"), 2),
            humidity=round(self._walk(previous, "humidity"), 2),
            co2_level=round(self._walk(previous, "co2_level"), 2),
            light_level=round(self._walk(previous, "light_level"), 2),
            occupancy_count=occupancy,
            motion_detected=motion,
            power_status=Switch.ON if noise.chance(POWER_ON_PROBABILITY) else Switch.OFF,
            air_purifier_status=Switch.ON if noise.chance(PURIFIER_ON_PROBABILITY) else Switch.OFF,
            energy_consumed_kwh=round(self._walk(previous, "energy_consumed_kwh"), 2),
            battery_backup_level=round(self._walk(previous, "battery_backup_level"), 2),
            cleaning_status=noise.choice(CLEANING_STATUSES),
            last_cleaned_timestamp=now if noise.chance(CLEANED_PROBABILITY) else previous.last_cleaned_timestamp,
            fire_alarm_triggered=noise.chance(self._rare_p),
            gas_leak_detected=noise.chance(self._rare_p),
        )
