"""
Wire protocol spoken between the relay, the device and its clients.

Every frame is a single text message.  A connection announces what it is
with a role-claim token, clients send bare command tokens, and the device
sends JSON sensor readings:

    device  -> relay   ESP32_CONNECTED
    relay   -> device  connection_successful
    client  -> relay   FLUTTER_CONNECTED
    relay   -> client  connection_successful
    client  -> relay   LIGHT_ON                      (forwarded to device)
    device  -> relay   {"temperature": 22.5, "humidity": 50, "light": 1}
    relay   -> client  {"source": "esp32", "temperature": 22.5, ...}

``classify`` turns a raw frame into one of the message types below.  It never
raises: anything it cannot make sense of comes back as ``Unrecognized``.
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, ValidationError

DEVICE_CLAIM = "ESP32_CONNECTED"
CLIENT_CLAIM = "FLUTTER_CONNECTED"
ACK = "connection_successful"

COMMANDS: frozenset[str] = frozenset(
    [
        "LIGHT_ON",
        "LIGHT_OFF",
        "FAN_ON",
        "FAN_OFF",
        "AUTO_ON",
        "AUTO_OFF",
    ]
)

TELEMETRY_FIELDS: tuple[str, ...] = ("temperature", "humidity", "light")


class Role(str, Enum):
    UNASSIGNED = "unassigned"
    DEVICE = "device"
    CLIENT = "client"


class SensorReading(BaseModel):
    """Shape check for a device reading; extra fields are kept as-is."""

    model_config = ConfigDict(extra="allow")

    temperature: Any
    humidity: Any
    light: Any


@dataclass(frozen=True)
class RoleClaim:
    role: Role


@dataclass(frozen=True)
class Command:
    token: str


@dataclass(frozen=True)
class Telemetry:
    reading: dict[str, Any]


UnrecognizedReason = Literal["not_json", "bad_shape"]


@dataclass(frozen=True)
class Unrecognized:
    raw: str
    reason: UnrecognizedReason


ClassifiedMessage = Union[RoleClaim, Command, Telemetry, Unrecognized]


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON
    raise ValueError(f"non-standard JSON constant: {name}")


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if math.isinf(value):
        raise ValueError(f"number out of range: {text}")
    return value


def classify(raw: str) -> ClassifiedMessage:
    """Classify a raw inbound frame.  Token matching is exact and case-sensitive."""
    if raw == DEVICE_CLAIM:
        return RoleClaim(Role.DEVICE)
    if raw == CLIENT_CLAIM:
        return RoleClaim(Role.CLIENT)
    if raw in COMMANDS:
        return Command(raw)

    try:
        data = json.loads(
            raw, parse_constant=_reject_constant, parse_float=_parse_finite_float
        )
    except (ValueError, RecursionError):
        return Unrecognized(raw, "not_json")

    if not isinstance(data, dict):
        return Unrecognized(raw, "bad_shape")

    try:
        SensorReading.model_validate(data)
    except ValidationError:
        return Unrecognized(raw, "bad_shape")

    return Telemetry(data)


def tag_reading(reading: dict[str, Any], source: str) -> dict[str, Any]:
    """
    Return a copy of *reading* tagged with the device *source*.

    The tag goes first and the device's own fields are laid over it, so a
    reading that already carries a ``source`` keeps its value.
    """
    return {"source": source, **reading}
