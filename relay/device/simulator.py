#!/usr/bin/env python3
"""
Device simulator, standing in for the ESP32 board when no hardware is around.

Connects to the relay, claims the device role and then behaves like the
firmware: a sensor reading every few seconds, relay outputs switched by the
commands clients send, and a reconnect loop when the link drops.

Usage: python -m relay.device.simulator [--url ws://host:port/] [--interval 3]
"""

import argparse
import asyncio
import json
import logging
import random
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import websockets

from relay.config import settings
from relay.protocol import ACK, DEVICE_CLAIM

logger = logging.getLogger(__name__)

SEND_INTERVAL: float = 3.0
RECONNECT_DELAY: float = 5.0
ACK_TIMEOUT: float = 10.0


@dataclass
class DeviceState:
    """Outputs of the board: two relays and the automatic-mode flag."""

    light: bool = False
    fan: bool = False
    auto_mode: bool = False

    def apply(self, command: str) -> bool:
        """Apply a command token.  Returns False for anything unknown."""
        if command == "AUTO_ON":
            self.auto_mode = True
        elif command == "AUTO_OFF":
            self.auto_mode = False
        elif command == "LIGHT_ON":
            self.light = True
        elif command == "LIGHT_OFF":
            self.light = False
        elif command == "FAN_ON":
            self.fan = True
        elif command == "FAN_OFF":
            self.fan = False
        else:
            return False
        return True


def build_reading(
    temperature: float,
    humidity: float,
    dark: bool,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build a reading the way the firmware formats it."""
    now = now or datetime.now()
    return {
        "temperature": round(temperature, 1),
        "humidity": round(humidity, 1),
        "light": 1 if dark else 0,
        "timestamp": now.strftime("%Y-%m-%d %H:%M:%S"),
    }


def sample_reading(rng: random.Random) -> dict[str, Any]:
    """A plausible indoor reading."""
    return build_reading(
        temperature=rng.uniform(18.0, 32.0),
        humidity=rng.uniform(35.0, 80.0),
        dark=rng.random() < 0.5,
    )


async def _send_readings(ws: Any, interval: float, rng: random.Random) -> None:
    while True:
        reading = sample_reading(rng)
        await ws.send(json.dumps(reading))
        logger.debug("Reading sent: %s", reading)
        await asyncio.sleep(interval)


async def run_session(
    url: str,
    state: DeviceState,
    interval: float = SEND_INTERVAL,
    rng: random.Random | None = None,
) -> None:
    """One connection lifetime: claim the device role, then send and obey."""
    rng = rng or random.Random()
    async with websockets.connect(url) as ws:
        await ws.send(DEVICE_CLAIM)
        reply = await asyncio.wait_for(ws.recv(), timeout=ACK_TIMEOUT)
        if reply != ACK:
            logger.error("Relay did not acknowledge device claim: %r", reply)
            return
        logger.info("Connected to relay at %s", url)

        sender = asyncio.create_task(_send_readings(ws, interval, rng))
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                if state.apply(message):
                    logger.info(
                        "Command %s -> light=%s fan=%s auto=%s",
                        message,
                        state.light,
                        state.fan,
                        state.auto_mode,
                    )
                else:
                    logger.debug("Ignoring message: %r", message)
        finally:
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass


async def run_device(
    url: str,
    interval: float = SEND_INTERVAL,
    reconnect_delay: float = RECONNECT_DELAY,
    state: DeviceState | None = None,
) -> None:
    """Run the simulated device forever, reconnecting whenever the link drops."""
    state = state or DeviceState()
    while True:
        try:
            await run_session(url, state, interval)
        except asyncio.CancelledError:
            raise
        except (OSError, asyncio.TimeoutError, websockets.ConnectionClosed) as exc:
            logger.warning("Relay connection lost: %s", exc)
        logger.info("Reconnecting in %.1f s", reconnect_delay)
        await asyncio.sleep(reconnect_delay)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Simulate the ESP32 sensor board")
    parser.add_argument("--url", default=f"ws://localhost:{settings.port}/")
    parser.add_argument("--interval", type=float, default=SEND_INTERVAL)
    parser.add_argument("--reconnect-delay", type=float, default=RECONNECT_DELAY)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        asyncio.run(run_device(args.url, args.interval, args.reconnect_delay))
    except KeyboardInterrupt:
        print("\nInterrupted by user. Exiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
