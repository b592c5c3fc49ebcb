"""Id generators for ledger entries, payments and activity rows."""

import itertools
import threading
import time
import uuid
from typing import Optional

from tradecredits.credits.ports import IdGenerator


class TimestampIdGenerator(IdGenerator):
    """`<prefix>_<millis>_<random>` ids; sortable by creation time."""

    def generate(self, prefix: Optional[str] = None) -> str:
        millis = int(time.time() * 1000)
        suffix = uuid.uuid4().hex[:12]
        body = f"{millis}_{suffix}"
        return f"{prefix}_{body}" if prefix else body


class SequentialIdGenerator(IdGenerator):
    """Deterministic ids (`payment_1`, `payment_2`, ...). For tests and local runs."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def generate(self, prefix: Optional[str] = None) -> str:
        with self._lock:
            n = next(self._counter)
        return f"{prefix}_{n}" if prefix else str(n)
