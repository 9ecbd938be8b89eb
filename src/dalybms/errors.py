"""Typed protocol errors for the Daly BMS codec.

All errors derive from ``ValueError`` so callers that already guard
decode calls with ``except ValueError`` keep working.  Each error is
terminal for one decode attempt only; re-issuing the command is the
caller's decision.

Example:
    >>> from dalybms.errors import ChecksumError
    >>> err = ChecksumError(0x51, 0x50)
    >>> str(err)
    'checksum mismatch: calculated 0x51, received 0x50'
"""


class DalyError(ValueError):
    """Base class for every codec failure."""


class ReplySizeError(DalyError):
    """Reply buffer is shorter than the command requires."""

    def __init__(self, required: int, received: int):
        super().__init__(
            "reply too short: required {} bytes, received {}".format(
                required, received
            )
        )
        self.required = required
        self.received = received


class ChecksumError(DalyError):
    """Checksum byte does not match the sum of the preceding bytes."""

    def __init__(self, calculated: int, received: int):
        super().__init__(
            "checksum mismatch: calculated 0x{:02X}, received 0x{:02X}".format(
                calculated, received
            )
        )
        self.calculated = calculated
        self.received = received


class FrameNoError(DalyError):
    """Multi-frame reply carries a sequence number out of position."""

    def __init__(self, expected: int, received: int):
        super().__init__(
            "frame out of order: expected {}, received {}".format(
                expected, received
            )
        )
        self.expected = expected
        self.received = received


class InvalidReplyError(DalyError):
    """A reply field holds a value outside the protocol's domain."""
