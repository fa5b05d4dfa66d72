# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from pathlib import Path
from pathlib import PurePosixPath
from urllib.parse import unquote
from urllib.parse import urlparse

from gateway_bootstrap._shell import Shell

_logger = logging.getLogger(__name__)

_http_download_timeout_sec = 30 * 60


def fetch_and_extract(url: str, destination_dir: Path, shell: Shell) -> bool:
    """Download archive and unpack it into the destination directory.

    Failures are reported with the return value and never retried.
    """
    destination_dir.mkdir(parents=True, exist_ok=True)
    archive = destination_dir / _get_resource_name(url)
    _logger.info("Download: start: %s -> %s", url, archive)
    result = shell.run(
        [
            'curl',
            '--fail',
            '--location',
            '--silent',
            '--show-error',
            '--connect-timeout', '10',
            '--output', str(archive),
            url,
            ],
        timeout_sec=_http_download_timeout_sec,
        )
    if result.returncode != 0:
        _logger.error("Download: failed with exit status %d: %s", result.returncode, url)
        return False
    result = shell.run(['tar', '-xzf', str(archive), '-C', str(destination_dir)])
    if result.returncode != 0:
        _logger.error("Extract: failed with exit status %d: %s", result.returncode, archive)
        return False
    _logger.info("Download: done: %s extracted to %s", archive.name, destination_dir)
    return True


def _get_resource_name(url: str) -> str:
    """Parse resource name from URL.

    >>> _get_resource_name('https://example.com/path/to/connector-1.2.tar.gz')
    'connector-1.2.tar.gz'
    >>> _get_resource_name('https://example.com/path/to/file%3D%3D.tgz?sig=1')
    'file==.tgz'
    >>> _get_resource_name('https://example.com/')
    'download'
    """
    return PurePosixPath(unquote(urlparse(url).path)).name or 'download'
