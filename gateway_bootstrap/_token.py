# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from pathlib import Path
from typing import Optional
from typing import Sequence
from typing import Tuple

from gateway_bootstrap._config import ProvisioningConfig
from gateway_bootstrap._errors import MissingCredentials
from gateway_bootstrap._errors import TokenAcquisitionFailed
from gateway_bootstrap._logging import redact_secrets
from gateway_bootstrap._secrets import ResolvedSecrets
from gateway_bootstrap._shell import Shell
from gateway_bootstrap._shell import command_echo

_logger = logging.getLogger(__name__)


class TokenHelper:
    """External program that prints a connector token to stdout."""

    def __init__(self, shell: Shell, command: Sequence[str]):
        self._shell = shell
        self._command = list(command)

    def __repr__(self):
        return f'<{self.__class__.__name__} {self._command[0]}>'

    def fetch(self, credentials_path: Path, api_url: str) -> Tuple[int, str]:
        with command_echo.suppressed():
            result = self._shell.run([
                *self._command,
                '--credentials', str(credentials_path),
                '--api-url', api_url,
                ])
        return result.returncode, result.stdout.decode('utf-8', errors='replace').strip()


def acquire_token(
        config: ProvisioningConfig,
        secrets: ResolvedSecrets,
        token_helper: TokenHelper,
        ) -> str:
    config.require('api_url')
    credentials_path = secrets.credentials_path or Path(config.service_account_credentials_path)
    _logger.info("Request connector token from %s", config.api_url)
    returncode, token = token_helper.fetch(credentials_path, config.api_url)
    if returncode != 0:
        _logger.error("Failed to get connector token: %r exited with %d", token_helper, returncode)
        raise TokenAcquisitionFailed(returncode)
    redact_secrets.add_secrets([token])
    _logger.info("Connector token received")
    return token


def validate_preconditions(registration_code: str, ad_password: str, token: Optional[str]):
    values = [
        ('registration_code', registration_code),
        ('ad_password', ad_password),
        ('connector_token', token),
        ]
    missing = []
    for name, value in values:
        if not value:
            _logger.error("%s is empty", name)
            missing.append(name)
    if missing:
        raise MissingCredentials(missing)
    _logger.info("Registration code, AD password and connector token are present")
