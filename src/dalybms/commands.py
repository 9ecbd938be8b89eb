"""Request builders and reply decoders for each Daly BMS command.

Every command has three functions:

- ``request_<name>(...)`` returns the 13-byte frame to send,
- ``<name>_reply_size(...)`` returns how many bytes to read back,
- ``decode_<name>(data, ...)`` validates and decodes the reply.

Cell voltages, cell temperatures and balancing state need the cell or
sensor count from a previously decoded :class:`~dalybms.readings.Status`;
it is passed in explicitly as *count*.

The generic :func:`request`, :func:`reply_size` and :func:`decode`
dispatch on a :class:`Command`.

Example:
    >>> from dalybms.commands import Command, decode, request
    >>> request(Command.SOC).hex(' ')
    'a5 40 90 08 00 00 00 00 00 00 00 00 7d'
    >>> raw = bytes.fromhex("a5 40 90 08 02 1f 00 00 75 49 02 f3 51")
    >>> decode(Command.SOC, raw).soc_percent
    75.5
"""

import logging
import math
import struct
from enum import IntEnum

from dalybms.error_codes import ErrorCode, decode_error_codes
from dalybms.errors import InvalidReplyError
from dalybms.protocol import (
    PROTO_FRAME_LEN,
    PROTO_OFFSET_FRAME_DATA,
    PROTO_OFFSET_PAYLOAD,
    PROTO_TEMP_OFFSET,
    build_request,
    decode_temperature,
    frame_count,
    read_bit,
    reassemble,
    validate_frame,
)
from dalybms.readings import (
    CellVoltageRange,
    IOState,
    MosfetMode,
    MosfetStatus,
    Soc,
    Status,
    TemperatureRange,
)

log = logging.getLogger(__name__)


class Command(IntEnum):
    """Command identifiers (frame byte 2)."""

    SOC = 0x90
    CELL_VOLTAGE_RANGE = 0x91
    TEMPERATURE_RANGE = 0x92
    MOSFET_STATUS = 0x93
    STATUS = 0x94
    CELL_VOLTAGES = 0x95
    CELL_TEMPERATURES = 0x96
    BALANCING_STATE = 0x97
    ERROR_CODE = 0x98
    SET_DISCHARGE_MOSFET = 0xD9
    SET_CHARGE_MOSFET = 0xDA
    SET_SOC = 0x21
    RESET = 0x00


# Values carried by each frame of a multi-frame reply.
CELL_VOLTAGES_PER_FRAME = 3
CELL_TEMPERATURES_PER_FRAME = 7

# Balancing flags occupy payload bytes 4-9.
BALANCING_MAX_CELLS = 48

# Current is sent with a fixed offset so it fits an unsigned field.
CURRENT_OFFSET = 30000

# SOC is exchanged in tenths of a percent.
SOC_MAX_RAW = 1000


def _u16(frame: bytes, offset: int) -> int:
    return struct.unpack_from(">H", frame, offset)[0]


# -- SOC (0x90) --------------------------------------------------------------


def request_soc() -> bytes:
    return build_request(Command.SOC)


def soc_reply_size() -> int:
    return PROTO_FRAME_LEN


def decode_soc(data: bytes) -> Soc:
    """Decode a SOC reply.

    Layout: total voltage u16 dV at bytes 4-5, current u16 at 8-9
    (offset by 30000, in dA), SOC u16 permille at 10-11.

    Raises:
        ReplySizeError: If *data* is shorter than one frame.
        ChecksumError: If the checksum does not match.
    """
    frame = validate_frame(data)
    return Soc(
        total_voltage=_u16(frame, 4) / 10.0,
        current=(_u16(frame, 8) - CURRENT_OFFSET) / 10.0,
        soc_percent=_u16(frame, 10) / 10.0,
    )


# -- Cell voltage range (0x91) -----------------------------------------------


def request_cell_voltage_range() -> bytes:
    return build_request(Command.CELL_VOLTAGE_RANGE)


def cell_voltage_range_reply_size() -> int:
    return PROTO_FRAME_LEN


def decode_cell_voltage_range(data: bytes) -> CellVoltageRange:
    """Decode highest/lowest cell voltage (u16 mV) and cell numbers."""
    frame = validate_frame(data)
    return CellVoltageRange(
        highest_voltage=_u16(frame, 4) / 1000.0,
        highest_cell=frame[6],
        lowest_voltage=_u16(frame, 7) / 1000.0,
        lowest_cell=frame[9],
    )


# -- Temperature range (0x92) ------------------------------------------------


def request_temperature_range() -> bytes:
    return build_request(Command.TEMPERATURE_RANGE)


def temperature_range_reply_size() -> int:
    return PROTO_FRAME_LEN


def decode_temperature_range(data: bytes) -> TemperatureRange:
    frame = validate_frame(data)
    return TemperatureRange(
        highest_temperature=decode_temperature(frame[4]),
        highest_sensor=frame[5],
        lowest_temperature=decode_temperature(frame[6]),
        lowest_sensor=frame[7],
    )


# -- MOSFET status (0x93) ----------------------------------------------------


def request_mosfet_status() -> bytes:
    return build_request(Command.MOSFET_STATUS)


def mosfet_status_reply_size() -> int:
    return PROTO_FRAME_LEN


def decode_mosfet_status(data: bytes) -> MosfetStatus:
    """Decode MOSFET mode, switch states, cycles and remaining capacity.

    Capacity is a u32 in mAh at bytes 8-11.

    Raises:
        ReplySizeError: If *data* is shorter than one frame.
        ChecksumError: If the checksum does not match.
        InvalidReplyError: If the mode byte is not 0, 1 or 2.
    """
    frame = validate_frame(data)
    try:
        mode = MosfetMode(frame[4])
    except ValueError:
        log.warning("unknown mosfet mode: 0x%02X", frame[4])
        raise InvalidReplyError(
            "unknown mosfet mode: 0x{:02X}".format(frame[4])
        ) from None
    return MosfetStatus(
        mode=mode,
        charging_mosfet=frame[5] != 0,
        discharging_mosfet=frame[6] != 0,
        bms_cycles=frame[7],
        capacity_ah=struct.unpack_from(">I", frame, 8)[0] / 1000.0,
    )


# -- Status (0x94) -----------------------------------------------------------


def request_status() -> bytes:
    return build_request(Command.STATUS)


def status_reply_size() -> int:
    return PROTO_FRAME_LEN


def decode_status(data: bytes) -> Status:
    """Decode the general status reply.

    Byte 8 packs the digital I/O state LSB first: DI1-DI4 in bits 0-3,
    DO1-DO4 in bits 4-7.
    """
    frame = validate_frame(data)
    io = frame[8]
    return Status(
        cells=frame[4],
        temperature_sensors=frame[5],
        charger_running=frame[6] != 0,
        load_running=frame[7] != 0,
        states=IOState(*(read_bit(io, bit) for bit in range(8))),
        cycles=_u16(frame, 9),
    )


# -- Cell voltages (0x95, multi-frame) ---------------------------------------


def request_cell_voltages() -> bytes:
    return build_request(Command.CELL_VOLTAGES)


def cell_voltages_reply_size(n_cells: int) -> int:
    return frame_count(n_cells, CELL_VOLTAGES_PER_FRAME) * PROTO_FRAME_LEN


def _cell_voltage(frame: bytes, index: int) -> float:
    return _u16(frame, PROTO_OFFSET_FRAME_DATA + 2 * index) / 1000.0


def decode_cell_voltages(data: bytes, n_cells: int) -> tuple[float, ...]:
    """Decode per-cell voltages (V) spread over ceil(n_cells / 3) frames.

    Raises:
        ReplySizeError: If *data* is shorter than all frames combined.
        FrameNoError: If a frame's sequence byte is out of position.
        ChecksumError: If any frame's checksum does not match.
    """
    return reassemble(data, n_cells, CELL_VOLTAGES_PER_FRAME, _cell_voltage)


# -- Cell temperatures (0x96, multi-frame) -----------------------------------


def request_cell_temperatures() -> bytes:
    return build_request(Command.CELL_TEMPERATURES)


def cell_temperatures_reply_size(n_sensors: int) -> int:
    return frame_count(n_sensors, CELL_TEMPERATURES_PER_FRAME) * PROTO_FRAME_LEN


def _cell_temperature(frame: bytes, index: int) -> int:
    # Not narrowed to int8, unlike the temperature range reply.
    return frame[PROTO_OFFSET_FRAME_DATA + index] - PROTO_TEMP_OFFSET


def decode_cell_temperatures(data: bytes, n_sensors: int) -> tuple[int, ...]:
    """Decode per-sensor temperatures (deg C) over ceil(n_sensors / 7) frames."""
    return reassemble(
        data, n_sensors, CELL_TEMPERATURES_PER_FRAME, _cell_temperature
    )


# -- Balancing state (0x97) --------------------------------------------------


def request_balancing_state() -> bytes:
    return build_request(Command.BALANCING_STATE)


def balancing_state_reply_size() -> int:
    return PROTO_FRAME_LEN


def decode_balancing_state(data: bytes, n_cells: int) -> tuple[bool, ...]:
    """Decode per-cell balancing flags.

    Cell 1 is bit 0 of byte 4, cell 9 is bit 0 of byte 5, and so on.
    At most 48 cells are reported; larger counts are truncated.
    """
    frame = validate_frame(data)
    n = min(n_cells, BALANCING_MAX_CELLS)
    return tuple(
        read_bit(frame[PROTO_OFFSET_PAYLOAD + cell // 8], cell % 8)
        for cell in range(n)
    )


# -- Error codes (0x98) ------------------------------------------------------


def request_error_code() -> bytes:
    return build_request(Command.ERROR_CODE)


def error_code_reply_size() -> int:
    return PROTO_FRAME_LEN


def decode_error_code(data: bytes) -> tuple[ErrorCode, ...]:
    """Decode the active alarm/fault flags in table order."""
    return decode_error_codes(validate_frame(data))


# -- Setters and reset -------------------------------------------------------


def request_set_discharge_mosfet(enable: bool) -> bytes:
    return build_request(Command.SET_DISCHARGE_MOSFET, bytes([int(enable)]))


def request_set_charge_mosfet(enable: bool) -> bytes:
    return build_request(Command.SET_CHARGE_MOSFET, bytes([int(enable)]))


def encode_soc_percent(soc_percent: float) -> int:
    """Encode a SOC percentage as tenths of a percent, clamped to 0-1000.

    Halves round away from zero.  NaN encodes as 0.

    Example:
        >>> encode_soc_percent(75.5)
        755
        >>> encode_soc_percent(150.0)
        1000
    """
    if math.isnan(soc_percent) or soc_percent <= 0:
        return 0
    return min(math.floor(soc_percent * 10.0 + 0.5), SOC_MAX_RAW)


def request_set_soc(soc_percent: float) -> bytes:
    """Build a SET_SOC frame; the value sits in payload bytes 10-11."""
    payload = bytearray(8)
    struct.pack_into(">H", payload, 6, encode_soc_percent(soc_percent))
    return build_request(Command.SET_SOC, bytes(payload))


def request_reset() -> bytes:
    """Build a RESET frame (factory defaults)."""
    return build_request(Command.RESET)


def acknowledge_reply_size() -> int:
    return PROTO_FRAME_LEN


def decode_acknowledge(data: bytes) -> None:
    """Validate a set/reset acknowledgement; only length and checksum matter."""
    validate_frame(data)


# -- Dispatch ----------------------------------------------------------------

_REQUESTS = {
    Command.SOC: request_soc,
    Command.CELL_VOLTAGE_RANGE: request_cell_voltage_range,
    Command.TEMPERATURE_RANGE: request_temperature_range,
    Command.MOSFET_STATUS: request_mosfet_status,
    Command.STATUS: request_status,
    Command.CELL_VOLTAGES: request_cell_voltages,
    Command.CELL_TEMPERATURES: request_cell_temperatures,
    Command.BALANCING_STATE: request_balancing_state,
    Command.ERROR_CODE: request_error_code,
    Command.SET_DISCHARGE_MOSFET: request_set_discharge_mosfet,
    Command.SET_CHARGE_MOSFET: request_set_charge_mosfet,
    Command.SET_SOC: request_set_soc,
    Command.RESET: request_reset,
}

# Decoders taking only the reply bytes.
_DECODERS = {
    Command.SOC: decode_soc,
    Command.CELL_VOLTAGE_RANGE: decode_cell_voltage_range,
    Command.TEMPERATURE_RANGE: decode_temperature_range,
    Command.MOSFET_STATUS: decode_mosfet_status,
    Command.STATUS: decode_status,
    Command.ERROR_CODE: decode_error_code,
    Command.SET_DISCHARGE_MOSFET: decode_acknowledge,
    Command.SET_CHARGE_MOSFET: decode_acknowledge,
    Command.SET_SOC: decode_acknowledge,
    Command.RESET: decode_acknowledge,
}

# Decoders that also need the cell or sensor count from Status.
_COUNTED_DECODERS = {
    Command.CELL_VOLTAGES: decode_cell_voltages,
    Command.CELL_TEMPERATURES: decode_cell_temperatures,
    Command.BALANCING_STATE: decode_balancing_state,
}

_MULTI_FRAME_SIZES = {
    Command.CELL_VOLTAGES: cell_voltages_reply_size,
    Command.CELL_TEMPERATURES: cell_temperatures_reply_size,
}


def _require_count(command: Command, count: int | None) -> int:
    if count is None:
        raise ValueError(
            "{} requires a cell/sensor count".format(command.name)
        )
    return count


def request(command: Command, *args) -> bytes:
    """Build the request frame for *command*.

    Only the setters take an argument: ``enable`` (bool) for the MOSFET
    commands and ``soc_percent`` (float) for SET_SOC.
    """
    return _REQUESTS[Command(command)](*args)


def reply_size(command: Command, count: int | None = None) -> int:
    """Number of reply bytes to read for *command*.

    Raises:
        ValueError: If *command* is multi-frame and *count* is missing.
    """
    command = Command(command)
    if command in _MULTI_FRAME_SIZES:
        return _MULTI_FRAME_SIZES[command](_require_count(command, count))
    return PROTO_FRAME_LEN


def decode(command: Command, data: bytes, count: int | None = None):
    """Decode a reply to *command*.

    Returns the decoded value for read commands, or None for set/reset
    acknowledgements.

    Raises:
        ValueError: If *command* needs a *count* and none was given.
        DalyError: On any protocol failure (size, checksum, sequence).
    """
    command = Command(command)
    if command in _COUNTED_DECODERS:
        return _COUNTED_DECODERS[command](
            data, _require_count(command, count)
        )
    return _DECODERS[command](data)
