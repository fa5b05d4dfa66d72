# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import tempfile
import time
from enum import Enum
from pathlib import Path
from pathlib import PurePosixPath
from typing import Callable
from typing import List
from typing import Mapping
from typing import NamedTuple
from typing import Optional
from typing import Sequence

from gateway_bootstrap._blob_store import BlobStore
from gateway_bootstrap._config import ProvisioningConfig
from gateway_bootstrap._secrets import ResolvedSecrets
from gateway_bootstrap._shell import Shell
from gateway_bootstrap._shell import command_echo

_logger = logging.getLogger(__name__)

_INSTALL_TIMEOUT_SEC = 30 * 60


class InstallState(Enum):
    PENDING = 'pending'
    ATTEMPTING = 'attempting'
    INSTALLED = 'installed'
    FAILED = 'failed'


class TlsFiles(NamedTuple):
    key: Path
    cert: Path


def fetch_tls_files(config: ProvisioningConfig, blob_store: BlobStore) -> TlsFiles:
    tls_dir = config.install_path() / 'tls'
    files = TlsFiles(
        key=tls_dir / PurePosixPath(config.tls_key_object).name,
        cert=tls_dir / PurePosixPath(config.tls_cert_object).name,
        )
    for key, path in ((config.tls_key_object, files.key), (config.tls_cert_object, files.cert)):
        if not blob_store.fetch(key, path):
            _logger.error("TLS file %s is not fetched; the install is expected to fail", path.name)
    return files


def check_tls_objects(config: ProvisioningConfig, blob_store: BlobStore) -> bool:
    """Fetch the TLS key and certificate to a scratch directory and discard them."""
    config.require('tls_bucket', 'tls_key_object', 'tls_cert_object')
    available = True
    with tempfile.TemporaryDirectory(prefix='gateway-tls-check-') as scratch_dir:
        for name, key in (('key', config.tls_key_object), ('cert', config.tls_cert_object)):
            if blob_store.fetch(key, Path(scratch_dir) / name):
                _logger.info("TLS check: %s %s is available", name, key)
            else:
                _logger.error("TLS check: %s %s is not available", name, key)
                available = False
    return available


def build_install_args(config: ProvisioningConfig, tls_files: Optional[TlsFiles]) -> List[str]:
    args = []
    if tls_files is not None:
        args.extend(['--ssl-key', str(tls_files.key)])
        args.extend(['--ssl-cert', str(tls_files.cert)])
    else:
        args.append('--insecure')
    args.extend(['--domain', config.ad_domain])
    args.extend(['--domain-controller', config.ad_domain_controller])
    args.extend(['--sync-interval', config.sync_interval])
    if config.ad_domain_group:
        args.extend(['--domain-group', config.ad_domain_group])
    if config.license_server_address:
        args.extend(['--local-license-server', f'http://{config.license_server_address}'])
    return args


def installer_env(config: ProvisioningConfig, secrets: ResolvedSecrets, token: str) -> Mapping[str, str]:
    return {
        'CONNECTOR_REGISTRATION_CODE': secrets.registration_code,
        'CONNECTOR_TOKEN': token,
        'AD_USERNAME': config.ad_username,
        'AD_PASSWORD': secrets.ad_password,
        }


class Installer:

    def __init__(self, shell: Shell, binary: Path, timeout_sec: float = _INSTALL_TIMEOUT_SEC):
        self._shell = shell
        self._binary = binary
        self._timeout_sec = timeout_sec

    def __repr__(self):
        return f'<{self.__class__.__name__} {self._binary}>'

    def install(self, args: Sequence[str], env: Mapping[str, str], log_file: Path) -> int:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        result = self._shell.run(
            [str(self._binary), 'install', *args],
            env=env,
            output_file=log_file,
            timeout_sec=self._timeout_sec,
            )
        return result.returncode


class ConnectorInstall:
    """Run the installer until it succeeds or retries run out.

    Every attempt gets the same arguments and the same token.
    """

    def __init__(
            self,
            installer: Installer,
            args: Sequence[str],
            env: Mapping[str, str],
            log_file: Path,
            retries: int,
            retry_delay_sec: float,
            sleep: Callable[[float], None] = time.sleep,
            ):
        self._installer = installer
        self._args = tuple(args)
        self._env = dict(env)
        self._log_file = log_file
        self._retries = retries
        self._retry_delay_sec = retry_delay_sec
        self._sleep = sleep
        self.state = InstallState.PENDING
        self.attempts = 0

    def run(self) -> InstallState:
        retries_left = self._retries
        with command_echo.suppressed():
            while True:
                self.state = InstallState.ATTEMPTING
                self.attempts += 1
                _logger.info("Connector install: attempt %d, output in %s", self.attempts, self._log_file)
                returncode = self._installer.install(self._args, self._env, self._log_file)
                if returncode == 0:
                    self.state = InstallState.INSTALLED
                    _logger.info("Connector install: succeeded on attempt %d", self.attempts)
                    return self.state
                if retries_left <= 0:
                    self.state = InstallState.FAILED
                    _logger.error(
                        "Connector install: exit status %d, no retries left after %d attempts",
                        returncode, self.attempts)
                    return self.state
                retries_left -= 1
                _logger.warning(
                    "Connector install: exit status %d, %d retries left, retry in %g sec",
                    returncode, retries_left, self._retry_delay_sec)
                self._sleep(self._retry_delay_sec)
