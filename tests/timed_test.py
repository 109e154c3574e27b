import logging
import time
import unittest

LOGGER = logging.getLogger("pycockroach.tests")


class TimedAsyncioTestCase(unittest.IsolatedAsyncioTestCase):
    "Logs the wall-clock time each asynchronous test takes."

    _time_start: float

    def setUp(self) -> None:
        self._time_start = time.perf_counter()

    def tearDown(self) -> None:
        elapsed = time.perf_counter() - self._time_start
        self._time_start = 0
        LOGGER.info("%s: %.3f sec", self.id(), elapsed)
