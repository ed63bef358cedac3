# socit/models/inverter.py
from dataclasses import dataclass
from datetime import time


@dataclass(frozen=True)
class BatteryInfo:
    capacity: float          # Wh
    max_charge_power: float  # W


@dataclass(frozen=True)
class CoilInfo:
    coil_power: float      # W, positive = import
    inverter_power: float  # W, positive = import
    coil_active: bool


@dataclass(frozen=True)
class ProgramEntry:
    time: time
    soc: int  # %
