import time

from loguru import logger


class Timer:
    """Context manager that logs elapsed wall clock time in milliseconds.

    Use as:
        with Timer("Consumer"):
            run_round()

    which logs ``Consumer Elapsed: 1234 milliseconds.`` on exit, even when
    the block raised. ``elapsed_ms`` stays available afterwards.
    """

    def __init__(self, name: str = "", *, log: bool = True):
        self.name = f"{name} " if name else ""
        self.log = log
        self.start = 0.0
        self.elapsed_ms = 0

    def __enter__(self):
        # Note: perf_counter includes time spent sleeping or blocked on I/O,
        #       which is exactly what a round waiting on the broker spends.
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = int((time.perf_counter() - self.start) * 1000)
        if self.log:
            # depth=1 so the caller's module/function/line is shown instead of Timer's
            logger.opt(depth=1).info(
                "{}Elapsed: {} milliseconds.", self.name, self.elapsed_ms
            )
