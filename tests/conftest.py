"""Shared pytest fixtures for dalybms tests."""

from dalybms.protocol import checksum


def make_frame(cmd: int, payload: bytes = b"", addr: int = 0x40) -> bytes:
    """Build a valid 13-byte frame as the BMS would send it."""
    frame = bytearray(13)
    frame[0] = 0xA5
    frame[1] = addr
    frame[2] = cmd
    frame[3] = 0x08
    frame[4 : 4 + len(payload)] = payload
    frame[12] = checksum(frame)
    return bytes(frame)


class FakeBus:
    """Test double for a bus: canned responses, records sent data.

    A canned response that is an exception instance is raised from
    ``receive`` instead of returned.
    """

    def __init__(self, responses: list):
        """Initialize with canned responses."""
        self._responses = list(responses)
        self.sent = []
        self.requested_sizes = []

    def send(self, data: bytes) -> None:
        """Record *data* for later inspection."""
        self.sent.append(data)

    def receive(self, size: int) -> bytes:
        """Return the next canned response, or empty bytes if exhausted."""
        self.requested_sizes.append(size)
        if not self._responses:
            return b""
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class StreamBus:
    """Test double for a serial port with a persistent input buffer.

    Each scripted reply is a ``(on_time, late)`` pair: *on_time* bytes
    are buffered when a request is sent, *late* bytes only after the
    following ``receive`` returns, as when a reply straddles the read
    timeout.  ``receive`` never returns more than is buffered.
    """

    def __init__(self, replies: list):
        """Initialize with scripted ``(on_time, late)`` replies."""
        self._replies = list(replies)
        self._buffer = bytearray()
        self._late = b""
        self.calls = []

    def reset_input_buffer(self) -> None:
        """Discard everything received so far."""
        self.calls.append("reset_input_buffer")
        self._buffer.clear()

    def send(self, data: bytes) -> None:
        """Buffer the on-time part of the next scripted reply."""
        self.calls.append("send")
        if self._replies:
            on_time, self._late = self._replies.pop(0)
            self._buffer += on_time

    def receive(self, size: int) -> bytes:
        """Read up to *size* buffered bytes, then let late bytes arrive."""
        self.calls.append("receive")
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        self._buffer += self._late
        self._late = b""
        return data
