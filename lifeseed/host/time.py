"""Time and timestamp utilities."""

from ..utils import isodatetime


def now_millis() -> int:
    """Get current UTC time in epoch milliseconds.

    This is the default ledger clock; block hashes are computed over it.
    """
    return isodatetime.now_millis()
