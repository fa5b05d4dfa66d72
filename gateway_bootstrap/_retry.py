# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable

_logger = logging.getLogger(__name__)


class Outcome(Enum):
    SUCCEEDED = 'succeeded'
    EXHAUSTED = 'exhausted'


class RetryPolicy:
    """Probe, its time budget and the interval between attempts.

    Every application of a policy starts with the full budget.
    Nothing is carried over between applications.
    """

    def __init__(
            self,
            description: str,
            probe: Callable[[], bool],
            timeout_sec: float,
            interval_sec: float,
            ):
        if interval_sec <= 0:
            raise ValueError(f"Interval must be positive, got {interval_sec!r}")
        self.description = description
        self.probe = probe
        self.timeout_sec = timeout_sec
        self.interval_sec = interval_sec

    def __repr__(self):
        return (
            f'<{self.__class__.__name__} {self.description!r} '
            f'{self.timeout_sec:g}/{self.interval_sec:g} sec>')


def run_with_retries(
        policy: RetryPolicy,
        sleep: Callable[[float], None] = time.sleep,
        ) -> Outcome:
    """Call the probe until it succeeds or the budget runs out.

    The probe is always called before the budget is checked.
    The budget is exhausted when it cannot cover one more interval:
    a budget of T with an interval of I allows at most T // I + 1 attempts
    and never sleeps longer than T in total.
    Exhaustion is reported, not raised; callers decide whether it is fatal.

    >>> run_with_retries(RetryPolicy("always", lambda: True, 0, 1))
    <Outcome.SUCCEEDED: 'succeeded'>
    >>> run_with_retries(RetryPolicy("never", lambda: False, 0, 1))
    <Outcome.EXHAUSTED: 'exhausted'>
    """
    remaining_sec = policy.timeout_sec
    attempts = 0
    while True:
        attempts += 1
        if policy.probe():
            _logger.info("%s: succeeded, %d attempts", policy.description, attempts)
            return Outcome.SUCCEEDED
        if remaining_sec < policy.interval_sec:
            _logger.warning(
                "%s: timed out after %g sec, %d attempts",
                policy.description, policy.timeout_sec, attempts)
            return Outcome.EXHAUSTED
        _logger.info(
            "%s: not yet, %g sec left, retry in %g sec",
            policy.description, remaining_sec, policy.interval_sec)
        sleep(policy.interval_sec)
        remaining_sec -= policy.interval_sec

