# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import time
from pathlib import Path
from typing import Callable
from typing import List
from typing import Mapping
from typing import Optional

from gateway_bootstrap._blob_store import BlobStore
from gateway_bootstrap._blob_store import S3BlobStore
from gateway_bootstrap._config import ProvisioningConfig
from gateway_bootstrap._download import fetch_and_extract
from gateway_bootstrap._errors import InstallFailed
from gateway_bootstrap._errors import ProvisioningFailed
from gateway_bootstrap._gates import DirectoryTool
from gateway_bootstrap._gates import PackageManager
from gateway_bootstrap._gates import ReadinessGates
from gateway_bootstrap._install import ConnectorInstall
from gateway_bootstrap._install import InstallState
from gateway_bootstrap._install import Installer
from gateway_bootstrap._install import build_install_args
from gateway_bootstrap._install import fetch_tls_files
from gateway_bootstrap._install import installer_env
from gateway_bootstrap._network import configure_network_if_absent
from gateway_bootstrap._network import connector_network_settings
from gateway_bootstrap._secrets import KeyService
from gateway_bootstrap._secrets import make_key_service
from gateway_bootstrap._secrets import resolve_secrets
from gateway_bootstrap._shell import LocalShell
from gateway_bootstrap._shell import Shell
from gateway_bootstrap._token import TokenHelper
from gateway_bootstrap._token import acquire_token
from gateway_bootstrap._token import validate_preconditions

_logger = logging.getLogger(__name__)


def connector_already_installed(config: ProvisioningConfig) -> bool:
    return config.connector_binary().exists()


class InstallSequencer:
    """Provision the gateway node from a fresh VM to a running connector.

    Steps run strictly one after another.
    Fatal problems raise ProvisioningFailed and stop the run;
    readiness gates and the download only log their failures.
    Re-running after a failure is safe: the steps before the install
    are idempotent or guarded by an existence check.
    """

    def __init__(
            self,
            config: ProvisioningConfig,
            *,
            shell: Shell,
            key_service: Optional[KeyService],
            token_helper: TokenHelper,
            gates: ReadinessGates,
            installer: Installer,
            blob_store: Optional[BlobStore],
            network_settings: Mapping[str, str] = connector_network_settings,
            sleep: Callable[[float], None] = time.sleep,
            ):
        self._config = config
        self._shell = shell
        self._key_service = key_service
        self._token_helper = token_helper
        self._gates = gates
        self._installer = installer
        self._blob_store = blob_store
        self._network_settings = network_settings
        self._sleep = sleep
        self.steps: List[str] = []
        self.install: Optional[ConnectorInstall] = None

    @classmethod
    def from_config(cls, config: ProvisioningConfig) -> 'InstallSequencer':
        shell = LocalShell()
        blob_store = S3BlobStore(config.tls_bucket, config.aws_region) if config.uses_tls() else None
        return cls(
            config,
            shell=shell,
            key_service=make_key_service(config),
            token_helper=TokenHelper(shell, config.token_helper_command()),
            gates=ReadinessGates(config, PackageManager(shell), DirectoryTool(shell)),
            installer=Installer(shell, config.installer_binary()),
            blob_store=blob_store,
            )

    def run(self) -> int:
        try:
            self._run_steps()
        except ProvisioningFailed as e:
            _logger.error("Provisioning failed: %s", e)
            return e.exit_code
        return 0

    def _step(self, name: str):
        _logger.info("Step: %s", name)
        self.steps.append(name)

    def _run_steps(self):
        config = self._config
        self._step('resolve_secrets')
        secrets = resolve_secrets(config, self._key_service)
        self._step('acquire_token')
        token = acquire_token(config, secrets, self._token_helper)
        self._step('validate_preconditions')
        validate_preconditions(secrets.registration_code, secrets.ad_password, token)
        if connector_already_installed(config):
            _logger.info("Connector is already installed at %s: nothing to do", config.connector_binary())
            return
        config.require('connector_download_url', 'ad_domain', 'ad_domain_controller')
        if config.uses_tls():
            config.require('tls_bucket')
        self._step('configure_network')
        configure_network_if_absent(Path(config.sysctl_file), self._network_settings, self._shell)
        self._step('download')
        fetch_and_extract(config.connector_download_url, config.install_path(), self._shell)
        self._step('wait_for_directory_service')
        self._gates.wait_for_directory_service(secrets)
        if config.license_server_address:
            self._step('wait_for_licensing_service')
            self._gates.wait_for_licensing_service()
        self._step('install')
        if config.uses_tls():
            tls_files = fetch_tls_files(config, self._blob_store)
        else:
            _logger.warning("No TLS key and certificate configured: install in insecure mode")
            tls_files = None
        self.install = ConnectorInstall(
            self._installer,
            build_install_args(config, tls_files),
            installer_env(config, secrets, token),
            Path(config.install_log_file),
            config.install_retries,
            config.install_retry_delay_sec,
            sleep=self._sleep,
            )
        if self.install.run() is InstallState.FAILED:
            raise InstallFailed(self.install.attempts)
        self._step('verify')
        result = self._shell.run([str(config.connector_binary()), 'status'])
        if result.returncode != 0:
            _logger.warning("Connector status check exited with %d", result.returncode)
        _logger.info("Gateway node provisioned")
