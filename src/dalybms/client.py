"""Command/reply session with a single Daly BMS.

Drives the codec in :mod:`dalybms.commands` over any bus object with
``send(data)`` and ``receive(size)`` methods.  Adds the policy the
codec leaves out: retries, a minimum delay between commands, and a
cached :class:`~dalybms.readings.Status` whose cell and sensor counts
gate the multi-frame commands.

Example:
    >>> from dalybms.client import Bms
    >>> bms = Bms(bus)
    >>> bms.get_status().cells
    16
    >>> bms.get_cell_voltages()
    (3.3, 3.301, ...)
"""

import logging
import time

from dalybms import commands
from dalybms.commands import Command
from dalybms.config import DELAY_MS, MINIMUM_DELAY_MS, RETRIES
from dalybms.error_codes import ErrorCode
from dalybms.errors import DalyError
from dalybms.readings import (
    CellVoltageRange,
    MosfetStatus,
    Soc,
    Status,
    TemperatureRange,
)

log = logging.getLogger(__name__)


class StatusError(RuntimeError):
    """A command needing cell/sensor counts ran before get_status()."""

    def __init__(self):
        super().__init__("get_status() has to be called at least once before")


class Bms:
    """Daly BMS session over a duck-typed bus.

    Not thread-safe; use one instance per bus.

    Args:
        bus: Object with ``send(data)`` and ``receive(size)`` methods.
            ``receive`` returns fewer than *size* bytes on timeout.
            If the bus also has ``reset_input_buffer()`` (as a pyserial
            ``Serial`` does), it is called before every request to
            discard stale input.
        retries: Extra tries after a failed command.
        delay_ms: Minimum milliseconds between a reply and the next
            request; raised to MINIMUM_DELAY_MS if lower.
    """

    def __init__(self, bus, retries: int = RETRIES, delay_ms: int = DELAY_MS):
        self._bus = bus
        self._retries = retries
        self._delay_ms = MINIMUM_DELAY_MS
        self._last_execution = time.monotonic()
        self._status = None
        self.set_delay(delay_ms)

    @property
    def status(self) -> Status | None:
        """Most recently decoded Status, or None."""
        return self._status

    def set_retry(self, retries: int) -> None:
        self._retries = retries

    def set_delay(self, delay_ms: int) -> None:
        """Set the inter-command delay, clamped to MINIMUM_DELAY_MS."""
        if delay_ms < MINIMUM_DELAY_MS:
            log.warning(
                "delay %d ms lower than minimum %d ms, using minimum",
                delay_ms, MINIMUM_DELAY_MS,
            )
            delay_ms = MINIMUM_DELAY_MS
        self._delay_ms = delay_ms
        log.debug("set delay to %d ms", self._delay_ms)

    # -- Transport ------------------------------------------------------------

    def _await_delay(self) -> None:
        elapsed = time.monotonic() - self._last_execution
        remaining = self._delay_ms / 1000.0 - elapsed
        if remaining > 0:
            time.sleep(remaining)

    def _clear_input(self) -> None:
        # Bytes left over from a short or late reply must not be read
        # as the start of the next one.
        reset_input_buffer = getattr(self._bus, "reset_input_buffer", None)
        if reset_input_buffer is not None:
            log.debug("clear pending input")
            reset_input_buffer()

    def _send_and_receive(self, frame: bytes, size: int) -> bytes:
        self._clear_input()
        self._await_delay()
        log.debug("write bytes: %s", frame.hex(" "))
        self._bus.send(frame)
        raw = self._bus.receive(size)
        self._last_execution = time.monotonic()
        log.debug("receive bytes: %s", raw.hex(" "))
        return raw

    def _execute(self, command: Command, args=(), count=None):
        """Send *command* and decode its reply, retrying on failure.

        Tries ``retries`` times, logging each failure, then makes one
        last try whose error propagates to the caller.
        """
        frame = commands.request(command, *args)
        size = commands.reply_size(command, count)
        for attempt in range(1, self._retries + 1):
            try:
                raw = self._send_and_receive(frame, size)
                return commands.decode(command, raw, count)
            except (DalyError, OSError) as exc:
                log.debug(
                    "%s: failed try %d of %d, repeating (%s)",
                    command.name, attempt, self._retries, exc,
                )
        raw = self._send_and_receive(frame, size)
        return commands.decode(command, raw, count)

    def _cached_status(self) -> Status:
        if self._status is None:
            raise StatusError()
        return self._status

    # -- Read commands --------------------------------------------------------

    def get_soc(self) -> Soc:
        log.debug("get SOC")
        return self._execute(Command.SOC)

    def get_cell_voltage_range(self) -> CellVoltageRange:
        log.debug("get cell voltage range")
        return self._execute(Command.CELL_VOLTAGE_RANGE)

    def get_temperature_range(self) -> TemperatureRange:
        log.debug("get temperature range")
        return self._execute(Command.TEMPERATURE_RANGE)

    def get_mosfet_status(self) -> MosfetStatus:
        log.debug("get mosfet status")
        return self._execute(Command.MOSFET_STATUS)

    def get_status(self) -> Status:
        """Fetch the general status and cache it for gated commands."""
        log.debug("get status")
        self._status = self._execute(Command.STATUS)
        return self._status

    def get_cell_voltages(self) -> tuple[float, ...]:
        """Fetch per-cell voltages using the cached cell count.

        Raises:
            StatusError: If get_status() has not succeeded yet.
        """
        log.debug("get cell voltages")
        cells = self._cached_status().cells
        return self._execute(Command.CELL_VOLTAGES, count=cells)

    def get_cell_temperatures(self) -> tuple[int, ...]:
        """Fetch per-sensor temperatures using the cached sensor count.

        Raises:
            StatusError: If get_status() has not succeeded yet.
        """
        log.debug("get cell temperatures")
        sensors = self._cached_status().temperature_sensors
        return self._execute(Command.CELL_TEMPERATURES, count=sensors)

    def get_balancing_status(self) -> tuple[bool, ...]:
        log.debug("get balancing status")
        cells = self._cached_status().cells
        return self._execute(Command.BALANCING_STATE, count=cells)

    def get_errors(self) -> tuple[ErrorCode, ...]:
        log.debug("get errors")
        return self._execute(Command.ERROR_CODE)

    # -- Write commands -------------------------------------------------------

    def set_discharge_mosfet(self, enable: bool) -> None:
        log.debug("set discharge mosfet to %s", enable)
        self._execute(Command.SET_DISCHARGE_MOSFET, (enable,))

    def set_charge_mosfet(self, enable: bool) -> None:
        log.debug("set charge mosfet to %s", enable)
        self._execute(Command.SET_CHARGE_MOSFET, (enable,))

    def set_soc(self, soc_percent: float) -> None:
        log.debug("set SOC to %s", soc_percent)
        self._execute(Command.SET_SOC, (soc_percent,))

    def reset(self) -> None:
        """Reset the BMS to factory settings."""
        log.debug("reset to factory default settings")
        self._execute(Command.RESET)
