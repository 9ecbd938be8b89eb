"""Tests for dalybms.protocol."""

import pytest

from conftest import make_frame
from dalybms.errors import ChecksumError, DalyError, FrameNoError, ReplySizeError
from dalybms.protocol import (
    PROTO_ADDR_HOST,
    PROTO_DATA_LEN,
    PROTO_FRAME_LEN,
    PROTO_START,
    build_request,
    checksum,
    decode_temperature,
    frame_count,
    read_bit,
    reassemble,
    to_int8,
    validate_checksum,
    validate_frame,
    validate_length,
)


# -- Checksum ----------------------------------------------------------------


class TestChecksum:
    """Tests for checksum."""

    def test_soc_reply_vector(self):
        """Checksum of the documented SOC reply is 0x51."""
        raw = bytes.fromhex("a5 40 90 08 02 1f 00 00 75 49 02 f3 51")
        assert checksum(raw) == 0x51

    def test_status_reply_vector(self):
        """Checksum of the documented Status reply is 0x16."""
        raw = bytes.fromhex("a5 40 94 08 10 04 01 00 aa 04 d2 00 16")
        assert checksum(raw) == 0x16

    def test_ignores_last_byte(self):
        """The last byte never contributes to the sum."""
        a = bytes([0xA5, 0x40, 0x90, 0x00])
        b = bytes([0xA5, 0x40, 0x90, 0xFF])
        assert checksum(a) == checksum(b)

    def test_wraps_at_8_bits(self):
        """Overflow wraps silently modulo 256."""
        raw = bytes([0xFF] * 12 + [0x00])
        assert checksum(raw) == (0xFF * 12) & 0xFF

    def test_all_zero(self):
        """Sum of zeros is zero."""
        assert checksum(bytes(13)) == 0


# -- build_request -----------------------------------------------------------


class TestBuildRequest:
    """Tests for build_request."""

    def test_length_is_13(self):
        """Every request is exactly 13 bytes."""
        assert len(build_request(0x90)) == PROTO_FRAME_LEN

    def test_header_fields(self):
        """Start, host address, command and length sit at offsets 0-3."""
        frame = build_request(0x94)
        assert frame[0] == PROTO_START
        assert frame[1] == PROTO_ADDR_HOST
        assert frame[2] == 0x94
        assert frame[3] == PROTO_DATA_LEN

    def test_empty_payload_is_zero(self):
        """Payload bytes default to zero."""
        assert build_request(0x90)[4:12] == bytes(8)

    def test_soc_request_vector(self):
        """SOC request matches the known wire bytes."""
        expected = bytes.fromhex("a5 40 90 08 00 00 00 00 00 00 00 00 7d")
        assert build_request(0x90) == expected

    def test_payload_placed_at_offset_4(self):
        """Payload bytes are copied starting at offset 4."""
        frame = build_request(0xD9, b"\x01\x02")
        assert frame[4] == 0x01
        assert frame[5] == 0x02
        assert frame[6:12] == bytes(6)

    @pytest.mark.parametrize("cmd", [0x00, 0x21, 0x90, 0x98, 0xD9, 0xDA])
    def test_checksum_round_trip(self, cmd):
        """The last byte is always the checksum of the first twelve."""
        frame = build_request(cmd, bytes([0xDE, 0xAD, 0xBE, 0xEF]))
        assert checksum(frame) == frame[12]

    def test_payload_too_long(self):
        """More than 8 payload bytes is rejected."""
        with pytest.raises(ValueError, match="at most 8"):
            build_request(0x90, bytes(9))


# -- Validation --------------------------------------------------------------


class TestValidateLength:
    """Tests for validate_length."""

    def test_exact_length(self):
        """A buffer of exactly the required size is accepted."""
        validate_length(bytes(13), 13)

    def test_longer_buffer_accepted(self):
        """Extra trailing bytes are tolerated."""
        validate_length(bytes(15), 13)

    def test_short_buffer(self):
        """A buffer one byte short raises ReplySizeError."""
        with pytest.raises(ReplySizeError) as excinfo:
            validate_length(bytes(12), 13)
        assert excinfo.value.required == 13
        assert excinfo.value.received == 12

    def test_empty_buffer(self):
        """An empty buffer raises ReplySizeError."""
        with pytest.raises(ReplySizeError):
            validate_length(b"", 13)

    def test_is_value_error(self):
        """ReplySizeError can be caught as ValueError."""
        with pytest.raises(ValueError, match="too short"):
            validate_length(b"", 13)


class TestValidateChecksum:
    """Tests for validate_checksum."""

    def test_valid(self):
        """A correct checksum passes."""
        validate_checksum(make_frame(0x90, bytes([1, 2, 3, 4, 5, 6, 7, 8])))

    def test_invalid(self):
        """An off-by-one checksum raises ChecksumError."""
        frame = bytearray(make_frame(0x90, bytes([0x01, 0x23, 0x45, 0x67])))
        frame[12] = (frame[12] + 1) & 0xFF
        with pytest.raises(ChecksumError) as excinfo:
            validate_checksum(bytes(frame))
        assert excinfo.value.calculated == (frame[12] - 1) & 0xFF
        assert excinfo.value.received == frame[12]

    @pytest.mark.parametrize("index", range(12))
    def test_single_byte_corruption(self, index):
        """Corrupting any header or payload byte is detected."""
        frame = bytearray(make_frame(0x93, bytes([1, 1, 0, 0x96, 0, 0, 0xC3, 0xCB])))
        frame[index] ^= 0x01
        with pytest.raises(ChecksumError):
            validate_checksum(bytes(frame))


class TestValidateFrame:
    """Tests for validate_frame."""

    def test_returns_first_13_bytes(self):
        """Trailing bytes are stripped from the returned frame."""
        frame = make_frame(0x90)
        assert validate_frame(frame + b"\xFF\xFF") == frame

    def test_short(self):
        """Short input raises ReplySizeError before checksum is checked."""
        with pytest.raises(ReplySizeError):
            validate_frame(make_frame(0x90)[:-1])


# -- Field helpers -----------------------------------------------------------


class TestReadBit:
    """Tests for read_bit."""

    def test_lsb_first(self):
        """Bit 0 is the least significant bit."""
        assert read_bit(0x01, 0) is True
        assert read_bit(0x01, 1) is False

    def test_msb(self):
        """Bit 7 is the most significant bit."""
        assert read_bit(0x80, 7) is True
        assert read_bit(0x7F, 7) is False

    def test_alternating(self):
        """0xAA sets the odd bits only."""
        assert [read_bit(0xAA, p) for p in range(8)] == [
            False, True, False, True, False, True, False, True,
        ]


class TestTemperature:
    """Tests for to_int8 and decode_temperature."""

    def test_offset_removed(self):
        """Raw 0x41 (65) is 25 deg C."""
        assert decode_temperature(0x41) == 25

    def test_zero_is_minus_40(self):
        """Raw 0 is the lowest reportable temperature."""
        assert decode_temperature(0) == -40

    def test_upper_bound_of_int8(self):
        """Raw 167 is 127 deg C, the int8 maximum."""
        assert decode_temperature(167) == 127

    def test_wraps_past_int8(self):
        """Raw 168 wraps to -128, matching the firmware's int8 type."""
        assert decode_temperature(168) == -128
        assert decode_temperature(255) == -41

    def test_to_int8(self):
        """to_int8 is two's-complement narrowing."""
        assert to_int8(0) == 0
        assert to_int8(-1) == -1
        assert to_int8(128) == -128
        assert to_int8(256) == 0


# -- Multi-frame reassembly --------------------------------------------------


def _first_byte(frame, index):
    """Extractor returning one raw byte per slot."""
    return frame[5 + index]


def _seq_frame(seq, values):
    return make_frame(0x96, bytes([seq]) + bytes(values))


class TestFrameCount:
    """Tests for frame_count."""

    def test_rounds_up(self):
        """Partial frames count as whole frames."""
        assert frame_count(4, 3) == 2
        assert frame_count(16, 3) == 6
        assert frame_count(8, 7) == 2

    def test_exact(self):
        """Exact multiples need no extra frame."""
        assert frame_count(6, 3) == 2
        assert frame_count(7, 7) == 1

    def test_zero(self):
        """Zero values need zero frames."""
        assert frame_count(0, 3) == 0


class TestReassemble:
    """Tests for reassemble."""

    def test_two_frames_in_order(self):
        """Values from both frames are concatenated in frame order."""
        data = _seq_frame(1, [10, 11, 12, 13, 14, 15, 16]) + _seq_frame(2, [17, 0, 0])
        assert reassemble(data, 8, 7, _first_byte) == (
            10, 11, 12, 13, 14, 15, 16, 17,
        )

    def test_padding_not_decoded(self):
        """Slots past the requested count are ignored."""
        data = _seq_frame(1, [1, 2, 3, 4, 5, 6, 7])
        assert reassemble(data, 3, 7, _first_byte) == (1, 2, 3)

    def test_zero_count(self):
        """A count of zero decodes nothing, even from empty input."""
        assert reassemble(b"", 0, 3, _first_byte) == ()

    def test_short_data(self):
        """Missing second frame raises ReplySizeError."""
        data = _seq_frame(1, [1, 2, 3, 4, 5, 6, 7])
        with pytest.raises(ReplySizeError) as excinfo:
            reassemble(data, 8, 7, _first_byte)
        assert excinfo.value.required == 26

    def test_extra_trailing_bytes(self):
        """Bytes beyond the last frame are ignored."""
        data = _seq_frame(1, [1, 2]) + b"\x00\x01\x02"
        assert reassemble(data, 2, 7, _first_byte) == (1, 2)

    def test_swapped_frames(self):
        """Frames in the wrong order raise FrameNoError."""
        data = _seq_frame(2, [8]) + _seq_frame(1, [1, 2, 3, 4, 5, 6, 7])
        with pytest.raises(FrameNoError) as excinfo:
            reassemble(data, 8, 7, _first_byte)
        assert excinfo.value.expected == 1
        assert excinfo.value.received == 2

    def test_sequence_checked_before_checksum(self):
        """A frame with both bad sequence and bad checksum reports sequence."""
        frame = bytearray(_seq_frame(3, [1]))
        frame[12] ^= 0xFF
        with pytest.raises(FrameNoError):
            reassemble(bytes(frame), 1, 7, _first_byte)

    def test_bad_checksum_in_second_frame(self):
        """Each frame's checksum is validated independently."""
        second = bytearray(_seq_frame(2, [8]))
        second[12] ^= 0x01
        data = _seq_frame(1, [1, 2, 3, 4, 5, 6, 7]) + bytes(second)
        with pytest.raises(ChecksumError):
            reassemble(data, 8, 7, _first_byte)

    def test_errors_share_base(self):
        """All reassembly errors are DalyError."""
        with pytest.raises(DalyError):
            reassemble(b"", 1, 7, _first_byte)
