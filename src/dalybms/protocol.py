"""Frame encoding and validation for the Daly BMS UART/RS-485 protocol.

Every message in either direction is a fixed 13-byte frame:
START, ADDR, CMD, LEN, PAYLOAD[8], CHECKSUM.  The checksum is the
8-bit wraparound sum of the twelve bytes before it.

Replies that do not fit one frame (cell voltages, cell temperatures)
arrive as several back-to-back frames whose first payload byte is a
1-based sequence number; :func:`reassemble` validates and flattens them.

Example:
    >>> from dalybms.protocol import build_request, checksum
    >>> raw = build_request(0x90)
    >>> raw.hex(' ')
    'a5 40 90 08 00 00 00 00 00 00 00 00 7d'
    >>> checksum(raw) == raw[-1]
    True
"""

import logging
import math
from typing import Callable, TypeVar

from dalybms.errors import ChecksumError, FrameNoError, ReplySizeError

log = logging.getLogger(__name__)

T = TypeVar("T")

# -- Protocol constants ------------------------------------------------------

PROTO_START = 0xA5
PROTO_ADDR_HOST = 0x40
PROTO_DATA_LEN = 0x08
PROTO_FRAME_LEN = 13

# Added by the BMS to every temperature byte.
PROTO_TEMP_OFFSET = 40

# Offsets within a frame.
PROTO_OFFSET_CMD = 2
PROTO_OFFSET_PAYLOAD = 4
PROTO_OFFSET_CHECKSUM = 12

# Byte 4 of each frame in a multi-frame reply is its sequence number;
# values start right after it.
PROTO_OFFSET_FRAME_NO = PROTO_OFFSET_PAYLOAD
PROTO_OFFSET_FRAME_DATA = PROTO_OFFSET_FRAME_NO + 1

# -- Checksum ----------------------------------------------------------------


def checksum(buffer: bytes) -> int:
    """Return the checksum for *buffer*, ignoring its last byte.

    Plain additive sum truncated to 8 bits.  Overflow wraps silently,
    matching the BMS firmware.
    """
    return sum(buffer[:-1]) & 0xFF


# -- Encoding ----------------------------------------------------------------


def build_request(command: int, payload: bytes = b"") -> bytes:
    """Build a complete 13-byte request frame from the host.

    Unused payload bytes are zero.  The checksum is written last.

    Args:
        command: Command id (see :class:`dalybms.commands.Command`).
        payload: Up to 8 payload bytes placed at offset 4.

    Raises:
        ValueError: If *payload* is longer than 8 bytes.

    Example:
        >>> build_request(0xD9, b"\\x01").hex(' ')
        'a5 40 d9 08 01 00 00 00 00 00 00 00 c7'
    """
    if len(payload) > PROTO_DATA_LEN:
        raise ValueError(
            "payload must be at most {} bytes, got {}".format(
                PROTO_DATA_LEN, len(payload)
            )
        )
    frame = bytearray(PROTO_FRAME_LEN)
    frame[0] = PROTO_START
    frame[1] = PROTO_ADDR_HOST
    frame[PROTO_OFFSET_CMD] = command
    frame[3] = PROTO_DATA_LEN
    frame[PROTO_OFFSET_PAYLOAD : PROTO_OFFSET_PAYLOAD + len(payload)] = payload
    frame[PROTO_OFFSET_CHECKSUM] = checksum(frame)
    return bytes(frame)


# -- Validation --------------------------------------------------------------


def validate_length(buffer: bytes, required: int) -> None:
    """Raise ReplySizeError if *buffer* holds fewer than *required* bytes.

    Longer buffers are accepted; trailing bytes are ignored by the
    decoders.
    """
    if len(buffer) < required:
        log.warning(
            "invalid buffer size - required=%d received=%d",
            required, len(buffer),
        )
        raise ReplySizeError(required, len(buffer))


def validate_checksum(buffer: bytes) -> None:
    """Raise ChecksumError if the last byte of *buffer* is not its checksum."""
    calculated = checksum(buffer)
    received = buffer[-1]
    if calculated != received:
        log.warning(
            "invalid checksum - calculated=0x%02X received=0x%02X buffer=%s",
            calculated, received, bytes(buffer).hex(" "),
        )
        raise ChecksumError(calculated, received)


def validate_frame(buffer: bytes) -> bytes:
    """Validate a single-frame reply and return its first 13 bytes.

    Raises:
        ReplySizeError: If *buffer* is shorter than one frame.
        ChecksumError: If the frame checksum does not match.
    """
    validate_length(buffer, PROTO_FRAME_LEN)
    frame = bytes(buffer[:PROTO_FRAME_LEN])
    validate_checksum(frame)
    return frame


# -- Field helpers -----------------------------------------------------------


def read_bit(byte: int, position: int) -> bool:
    """Return bit *position* of *byte*, counting from the LSB."""
    return (byte >> position) & 1 != 0


def to_int8(value: int) -> int:
    """Narrow *value* to a signed 8-bit integer with wraparound."""
    return (value + 0x80) % 0x100 - 0x80


def decode_temperature(raw: int) -> int:
    """Convert a raw temperature-range byte to degrees Celsius.

    The BMS adds 40 so that sub-zero readings fit an unsigned byte.
    The result is narrowed to int8 like the firmware's own type; raw
    values above 167 wrap negative.  Per-sensor cell temperatures are
    not narrowed and subtract PROTO_TEMP_OFFSET directly.
    """
    return to_int8(raw - PROTO_TEMP_OFFSET)


# -- Multi-frame replies -----------------------------------------------------


def frame_count(count: int, per_frame: int) -> int:
    """Number of reply frames needed to carry *count* values."""
    return math.ceil(count / per_frame)


def reassemble(
    data: bytes,
    count: int,
    per_frame: int,
    extract: Callable[[bytes, int], T],
) -> tuple[T, ...]:
    """Decode *count* values from a concatenated multi-frame reply.

    Each 13-byte window must carry its 1-based position at payload
    byte 4 and a valid checksum.  Values are pulled with
    ``extract(frame, index)`` for ``index`` 0..per_frame-1 until
    *count* values have been collected; padding in the last frame is
    never decoded.

    Args:
        data: Concatenated reply frames.
        count: Total number of values expected (cells or sensors).
        per_frame: Values carried by each frame.
        extract: Callable returning the value at slot *index* of a frame.

    Returns:
        tuple: Exactly *count* values in frame order.

    Raises:
        ReplySizeError: If *data* is shorter than all frames combined.
        FrameNoError: If a frame's sequence byte is out of position.
        ChecksumError: If any frame's checksum does not match.
    """
    n_frames = frame_count(count, per_frame)
    validate_length(data, n_frames * PROTO_FRAME_LEN)

    values = []
    for frame_no in range(1, n_frames + 1):
        start = (frame_no - 1) * PROTO_FRAME_LEN
        frame = bytes(data[start : start + PROTO_FRAME_LEN])
        if frame[PROTO_OFFSET_FRAME_NO] != frame_no:
            log.warning(
                "frame out of order - expected=%d received=%d",
                frame_no, frame[PROTO_OFFSET_FRAME_NO],
            )
            raise FrameNoError(frame_no, frame[PROTO_OFFSET_FRAME_NO])
        validate_checksum(frame)
        for index in range(per_frame):
            value = extract(frame, index)
            values.append(value)
            log.debug(
                "frame #%d value #%d: %s", frame_no, len(values), value
            )
            if len(values) >= count:
                break

    return tuple(values)
