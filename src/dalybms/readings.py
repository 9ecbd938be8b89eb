"""Decoded BMS values.

Plain immutable records built fresh by each decode call in
:mod:`dalybms.commands`.

Example:
    >>> from dalybms.readings import Soc
    >>> s = Soc(total_voltage=54.3, current=2.5, soc_percent=75.5)
    >>> s.current
    2.5
"""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Soc:
    """Pack voltage, current and state of charge.

    Current is in amps: negative while charging, positive while
    discharging.
    """

    total_voltage: float
    current: float
    soc_percent: float


@dataclass(frozen=True)
class CellVoltageRange:
    """Highest and lowest cell voltage with their 1-based cell numbers."""

    highest_voltage: float
    highest_cell: int
    lowest_voltage: float
    lowest_cell: int


@dataclass(frozen=True)
class TemperatureRange:
    """Highest and lowest temperature (deg C) with their sensor numbers."""

    highest_temperature: int
    highest_sensor: int
    lowest_temperature: int
    lowest_sensor: int


class MosfetMode(Enum):
    """Pack state reported in byte 4 of the MOSFET status reply."""

    STATIONARY = 0
    CHARGING = 1
    DISCHARGING = 2


@dataclass(frozen=True)
class MosfetStatus:
    """Pack mode, MOSFET switch states, cycle count and remaining capacity.

    ``capacity_ah`` is the remaining capacity in amp-hours.
    """

    mode: MosfetMode
    charging_mosfet: bool
    discharging_mosfet: bool
    bms_cycles: int
    capacity_ah: float


@dataclass(frozen=True)
class IOState:
    """Digital inputs and outputs, packed LSB first in one status byte."""

    di1: bool
    di2: bool
    di3: bool
    di4: bool
    do1: bool
    do2: bool
    do3: bool
    do4: bool


@dataclass(frozen=True)
class Status:
    """General BMS status.

    ``cells`` and ``temperature_sensors`` are needed to decode the cell
    voltage, cell temperature and balancing replies.
    """

    cells: int
    temperature_sensors: int
    charger_running: bool
    load_running: bool
    states: IOState
    cycles: int
