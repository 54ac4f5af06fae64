"""Server uptime."""

import time
from datetime import timedelta


class ServerTimer:
    def __init__(self) -> None:
        self.start_time = time.monotonic()

    def uptime(self) -> timedelta:
        return timedelta(seconds=time.monotonic() - self.start_time)
