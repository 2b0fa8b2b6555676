"""
Circuit breaker shared by all workers of a crawl run.
"""

import logging

from ..exceptions import TooManyErrors


class ErrorPolicy:
    """
    Counts consecutive fetch failures across every worker of a run.

    Any success resets the count. A failure that takes the count above
    maximum_number_of_errors aborts the run. Workers share one event loop and
    the update-and-check below never suspends, so every report is applied
    atomically in the order the fetches completed.
    """

    def __init__(self, maximum_number_of_errors: int):
        self.maximum_number_of_errors = maximum_number_of_errors
        self.logger = logging.getLogger(__name__)
        self._consecutive = 0
        self._total_failures = 0

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive

    @property
    def total_failures(self) -> int:
        return self._total_failures

    def record_success(self):
        self._consecutive = 0

    def record_failure(self):
        self._consecutive += 1
        self._total_failures += 1
        if self._consecutive > self.maximum_number_of_errors:
            self.logger.error(
                f"{self._consecutive} consecutive fetch failures "
                f"(maximum {self.maximum_number_of_errors})"
            )
            raise TooManyErrors(
                f"too many errors: {self._consecutive} consecutive fetch failures"
            )

    def reset(self):
        self._consecutive = 0
        self._total_failures = 0
