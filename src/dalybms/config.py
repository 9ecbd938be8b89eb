"""Session defaults for :class:`dalybms.client.Bms`.

Retry count and inter-command timing used when a ``Bms`` is built
without explicit values; both can be changed per session afterwards.

Example:
    >>> from dalybms.config import RETRIES, DELAY_MS
    >>> RETRIES
    3
"""

# Extra tries after a failed command before the error is raised.
RETRIES = 3

# Delay in milliseconds between the end of one reply and the next
# request.  Some USB/RS-485 dongles need ~10 ms to switch TX/RX.
DELAY_MS = 15

# Lower bound for DELAY_MS: 3.5 character times at 9600 baud.
MINIMUM_DELAY_MS = 4
