"""Wall clock adapter — implements the Clock port."""

from __future__ import annotations

import time


class SystemClock:
    """Current UTC time in whole epoch seconds."""

    def now(self) -> int:
        return int(time.time())
