"""
Process model - simulated pressures, flow, pump and valves for the dashboard.

Values are redrawn on a timer; there is no physics behind them.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


logger = logging.getLogger("process")

NOMINAL_PRESSURE = 750.0
PRESSURE_JITTER = 50.0
FLOW_PER_SPEED = 1.5
FLOW_JITTER = 10.0


class PumpStatus(Enum):
    OFF = "Off"
    ON = "On"


@dataclass
class PressureSensor:
    id: int
    name: str
    value: float = NOMINAL_PRESSURE
    unit: str = "kPa"


@dataclass
class Valve:
    id: int
    name: str
    position: int = 0  # 0-100


@dataclass
class Pump:
    status: PumpStatus = PumpStatus.OFF
    speed: int = 0  # 0-100


def _clamp_percent(value: float) -> int:
    return int(max(0, min(100, value)))


class ProcessModel:
    """Simulated plant state driven by operator inputs and a tick timer."""

    def __init__(self, sensors: int = 8, valves: int = 4, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.pressures: List[PressureSensor] = [
            PressureSensor(id=i + 1, name=f"Pressure Sensor {i + 1}") for i in range(sensors)
        ]
        self.valves: List[Valve] = [Valve(id=i + 1, name=f"Valve {i + 1}") for i in range(valves)]
        self.pump = Pump()
        self.flow_rate = 0.0
        self.updated_at: Optional[datetime] = None

        self._running = False

    def tick(self):
        """Redraw sensor values."""
        for sensor in self.pressures:
            sensor.value = round(NOMINAL_PRESSURE + (self.rng.random() - 0.5) * PRESSURE_JITTER, 1)

        if self.pump.status is PumpStatus.ON:
            self.flow_rate = round(self.pump.speed * FLOW_PER_SPEED + (self.rng.random() - 0.5) * FLOW_JITTER, 1)
        else:
            self.flow_rate = 0.0

        self.updated_at = datetime.now()

    async def run(self, interval: float = 2.0):
        """Tick until stop()."""
        self._running = True
        logger.info(f"Starting process simulation (interval: {interval}s)")
        while self._running:
            self.tick()
            await asyncio.sleep(interval)

    def stop(self):
        self._running = False

    # =========================================
    # OPERATOR INPUTS
    # =========================================

    def toggle_pump(self) -> PumpStatus:
        self.pump.status = PumpStatus.OFF if self.pump.status is PumpStatus.ON else PumpStatus.ON
        logger.info(f"Pump {self.pump.status.value}")
        return self.pump.status

    def set_pump_speed(self, speed: float) -> int:
        self.pump.speed = _clamp_percent(speed)
        return self.pump.speed

    def set_valve(self, valve_id: int, position: float) -> Valve:
        for valve in self.valves:
            if valve.id == valve_id:
                valve.position = _clamp_percent(position)
                return valve
        raise KeyError(valve_id)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "pressures": [
                {"id": s.id, "name": s.name, "value": s.value, "unit": s.unit} for s in self.pressures
            ],
            "flow_rate": self.flow_rate,
            "pump": {"status": self.pump.status.value, "speed": self.pump.speed},
            "valves": [{"id": v.id, "name": v.name, "position": v.position} for v in self.valves],
            "timestamp": self.updated_at.isoformat() if self.updated_at else None,
        }
