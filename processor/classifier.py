"""
HTTP client for the remote anomaly-prediction service.

The service takes one facility reading summarised as
``{zone, hour, occupancy, power_use, water_use, cleaning_status}`` and answers
with ``{prediction, anomaly_probability, normal_probability, risk_level,
input_data, timestamp}``.
"""

from datetime import datetime
from typing import Any

import requests
from pydantic import ValidationError

from processor.events import Event, EventKind, Severity
from simulator.schemas import AnomalyPrediction, Sample


class ClassifierError(RuntimeError):
    """The anomaly service could not be reached or returned an unusable answer."""


def build_request(sample: Sample) -> dict[str, Any]:
    """Translate a sample into the classifier's input shape."""
    water_use = sample.humidity * sample.occupancy_count / 100
    return {
        "zone": sample.zone.label,
        "hour": datetime.fromtimestamp(sample.timestamp / 1000).hour,
        "occupancy": sample.occupancy_count,
        "power_use": sample.energy_consumed_kwh,
        "water_use": round(water_use, 2),
        "cleaning_status": sample.cleaning_status.value,
    }


class AnomalyClassifier:
    """Thin ``requests`` wrapper around the prediction endpoint."""

    def __init__(self, url: str, timeout: float = 10.0, session: requests.Session | None = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def classify(self, sample: Sample) -> AnomalyPrediction:
        """Ask the service about one sample.

        Raises:
            ClassifierError: on transport errors, non-2xx answers or malformed bodies.
        """
        payload = build_request(sample)
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.HTTPError as e:
            raise ClassifierError(f"Anomaly service answered {e.response.status_code}") from e
        except requests.exceptions.RequestException as e:
            raise ClassifierError(f"Anomaly service request failed: {e}") from e
        except ValueError as e:
            raise ClassifierError("Anomaly service returned invalid JSON") from e

        try:
            return AnomalyPrediction(
                iot_data_id=sample.id,
                zone=(body.get("input_data") or payload)["zone"],
                prediction=body["prediction"],
                anomaly_probability=body.get("anomaly_probability", 0.0),
                normal_probability=body.get("normal_probability", 0.0),
                risk_level=body.get("risk_level", "Low"),
                input_data=body.get("input_data") or payload,
                api_timestamp=str(body.get("timestamp", "")),
                timestamp=sample.timestamp,
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise ClassifierError(f"Unexpected anomaly service response: {e}") from e

    def close(self):
        self.session.close()


def prediction_event(prediction: AnomalyPrediction) -> Event | None:
    """An ``anomaly_predicted`` event for positive verdicts, else None."""
    if not prediction.is_anomaly:
        return None
    severity = Severity.CRITICAL if prediction.risk_level.lower() == "high" else Severity.WARNING
    return Event(
        kind=EventKind.ANOMALY_PREDICTED,
        identity=f"{EventKind.ANOMALY_PREDICTED.value}:{prediction.iot_data_id}:{prediction.api_timestamp}",
        title="Anomaly detected",
        message=(
            f"{prediction.risk_level} risk anomaly in {prediction.zone}. "
            f"Probability: {prediction.anomaly_probability * 100:.1f}%"
        ),
        timestamp=prediction.timestamp,
        severity=severity,
        zone=prediction.zone,
    )


def unique_predictions(rows: list[dict]) -> list[AnomalyPrediction]:
    """Parse stored predictions, dropping repeats of (sample, service timestamp, verdict)."""
    seen: set[str] = set()
    results = []
    for row in rows:
        try:
            prediction = AnomalyPrediction.model_validate(row)
        except ValidationError:
            continue
        key = prediction.dedup_key()
        if key in seen:
            continue
        seen.add(key)
        results.append(prediction)
    return results
