# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from pathlib import Path
from typing import Iterable

_log_format = '%(asctime)s %(name)s %(levelname)s %(message)s'


class RedactSecrets(logging.Filter):
    """Replace registered secret values in log records with ***.

    >>> record = logging.LogRecord('x', logging.INFO, '', 0, "Token %s", ('abc123',), None)
    >>> redact = RedactSecrets()
    >>> redact.add_secrets(['abc123', ''])
    >>> redact.filter(record)
    True
    >>> record.getMessage()
    'Token ***'
    """

    def __init__(self):
        super().__init__()
        self._secrets = set()

    def add_secrets(self, secrets: Iterable[str]):
        self._secrets.update(s for s in secrets if s)

    def filter(self, record):
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = message
        # Longer first: a secret may contain a shorter one.
        for secret in sorted(self._secrets, key=len, reverse=True):
            redacted = redacted.replace(secret, '***')
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


redact_secrets = RedactSecrets()


def init_logging(log_file: Path):
    logging.getLogger().setLevel(logging.DEBUG)
    _init_file_logging(log_file)
    _init_stream_logging()


def _init_file_logging(log_file: Path):
    log_file.parent.mkdir(exist_ok=True, parents=True)
    file_handler = logging.FileHandler(log_file, mode='a')
    file_handler.setFormatter(logging.Formatter(_log_format))
    file_handler.setLevel(logging.DEBUG)
    file_handler.addFilter(redact_secrets)
    logging.getLogger().addHandler(file_handler)


def _init_stream_logging():
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(_log_format))
    stream_handler.setLevel(logging.INFO)
    stream_handler.addFilter(redact_secrets)
    logging.getLogger().addHandler(stream_handler)
