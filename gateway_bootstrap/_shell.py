# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import os
import shlex
import subprocess
from abc import ABCMeta
from abc import abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Mapping
from typing import Optional
from typing import Sequence

_logger = logging.getLogger(__name__)

_DEFAULT_RUN_TIMEOUT_SEC = 600
TIMED_OUT_EXIT_STATUS = 124


class _CommandEcho:
    """Whether commands are logged with their arguments.

    Code that passes secrets to commands, or builds them from secrets,
    runs inside suppressed(). Suppression nests.
    """

    def __init__(self):
        self._suppressed_depth = 0

    def is_enabled(self) -> bool:
        return self._suppressed_depth == 0

    @contextmanager
    def suppressed(self):
        self._suppressed_depth += 1
        try:
            yield
        finally:
            self._suppressed_depth -= 1


command_echo = _CommandEcho()


class Shell(metaclass=ABCMeta):

    @abstractmethod
    def run(
            self,
            args: Sequence[str],
            *,
            env: Optional[Mapping[str, str]] = None,
            output_file: Optional[Path] = None,
            timeout_sec: float = _DEFAULT_RUN_TIMEOUT_SEC,
            ) -> subprocess.CompletedProcess:
        """Run command and return its result whatever the exit status is.

        If output_file is given, stdout and stderr are appended to it
        instead of being captured.
        """
        pass


class LocalShell(Shell):

    def __repr__(self):
        return '<LocalShell>'

    def run(self, args, *, env=None, output_file=None, timeout_sec=_DEFAULT_RUN_TIMEOUT_SEC):
        args = [str(arg) for arg in args]
        _log(args, env)
        full_env = None if env is None else {**os.environ, **env}
        try:
            if output_file is None:
                result = subprocess.run(
                    args,
                    env=full_env,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=timeout_sec,
                    )
            else:
                with output_file.open('ab') as f:
                    result = subprocess.run(
                        args,
                        env=full_env,
                        stdin=subprocess.DEVNULL,
                        stdout=f,
                        stderr=subprocess.STDOUT,
                        timeout=timeout_sec,
                        )
        except subprocess.TimeoutExpired as e:
            _logger.warning("Killed after %g sec: %s", timeout_sec, args[0])
            return subprocess.CompletedProcess(args, TIMED_OUT_EXIT_STATUS, e.stdout, e.stderr)
        _logger.debug("Exit status %d: %s", result.returncode, args[0])
        if result.returncode != 0 and result.stderr and command_echo.is_enabled():
            _logger.debug("%s: stderr: %s", args[0], result.stderr.decode(errors='backslashreplace')[:5000])
        return result


def _log(args: Sequence[str], env: Optional[Mapping[str, str]]):
    if not command_echo.is_enabled():
        _logger.info("Run: %s (arguments hidden)", shlex.quote(args[0]))
        return
    if env:
        _logger.info("Run: %s (with %s set)", shlex.join(args), ', '.join(sorted(env)))
    else:
        _logger.info("Run: %s", shlex.join(args))
