"""Time-sortable identifiers for ledger records.

Identifiers follow the UUID version 7 layout: a 48-bit Unix millisecond
timestamp, a 12-bit sequence and 62 random bits. Identifiers generated by one
process are strictly increasing.
"""

import os
import threading
import time
from uuid import UUID

_VERSION = 0x7
_VARIANT = 0b10
_SEQUENCE_MAX = 0xFFF

_lock = threading.Lock()
_last_ms = 0
_sequence = 0


def _next_timestamp_and_sequence() -> tuple[int, int]:
    global _last_ms, _sequence

    with _lock:
        now_ms = time.time_ns() // 1_000_000
        if now_ms > _last_ms:
            _last_ms = now_ms
            _sequence = 0
        else:
            # Same millisecond or clock went backwards: keep counting from the last one
            _sequence += 1
            if _sequence > _SEQUENCE_MAX:
                _last_ms += 1
                _sequence = 0
        return _last_ms, _sequence


def new_movement_id() -> UUID:
    """Generate a new time-sortable movement id."""
    timestamp_ms, sequence = _next_timestamp_and_sequence()
    random_bits = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)

    value = (timestamp_ms & ((1 << 48) - 1)) << 80
    value |= _VERSION << 76
    value |= sequence << 64
    value |= _VARIANT << 62
    value |= random_bits
    return UUID(int=value)


def id_timestamp_ms(movement_id: UUID) -> int:
    """Extract the millisecond timestamp embedded in a time-sortable id."""
    return movement_id.int >> 80
