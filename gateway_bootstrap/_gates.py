# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Best-effort waits for infrastructure the connector depends on.

Every gate is a bounded retry of a probe. An exhausted gate is logged,
and the run goes on: if the infrastructure is really not ready,
the connector install fails and reports it.
"""
import logging
import socket
import time
from http import HTTPStatus
from typing import Callable
from typing import Dict
from typing import Optional

import requests

from gateway_bootstrap._config import ProvisioningConfig
from gateway_bootstrap._retry import Outcome
from gateway_bootstrap._retry import RetryPolicy
from gateway_bootstrap._retry import run_with_retries
from gateway_bootstrap._secrets import ResolvedSecrets
from gateway_bootstrap._shell import Shell
from gateway_bootstrap._shell import command_echo

_logger = logging.getLogger(__name__)

LDAPS_PORT = 636
DIRECTORY_UTILITY_PACKAGE = 'ldap-utils'


class PackageManager:

    _env = {'DEBIAN_FRONTEND': 'noninteractive'}

    def __init__(self, shell: Shell):
        self._shell = shell

    def update_index(self) -> bool:
        return self._shell.run(['apt-get', 'update'], env=self._env).returncode == 0

    def install(self, package: str) -> bool:
        result = self._shell.run(['apt-get', 'install', '--yes', package], env=self._env)
        return result.returncode == 0


class DirectoryTool:

    def __init__(self, shell: Shell):
        self._shell = shell

    def can_bind(self, server: str, bind_dn: str, password: str) -> bool:
        with command_echo.suppressed():
            result = self._shell.run([
                'ldapwhoami',
                '-x',
                '-H', f'ldap://{server}',
                '-D', bind_dn,
                '-w', password,
                ])
        return result.returncode == 0


def domain_resolves(domain: str) -> bool:
    try:
        addresses = socket.getaddrinfo(domain, None)
    except socket.gaierror as e:
        _logger.debug("Resolve %s: %s", domain, e)
        return False
    _logger.debug("Resolve %s: %s", domain, sorted({a[4][0] for a in addresses}))
    return True


def port_accepts_connections(host: str, port: int, timeout_sec: float = 5) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout_sec):
            return True
    except OSError as e:
        _logger.debug("Connect to %s:%d: %s", host, port, e)
        return False


def http_health_ok(url: str, timeout_sec: float = 5) -> bool:
    try:
        response = requests.get(url, timeout=timeout_sec)
    except requests.RequestException as e:
        _logger.debug("GET %s: %s", url, type(e).__name__)
        return False
    _logger.debug("GET %s: HTTP %d", url, response.status_code)
    return response.status_code == HTTPStatus.OK


def bind_dn(username: str, domain: str) -> str:
    """Make user principal name unless username is already qualified.

    >>> bind_dn('svc-connector', 'corp.example.com')
    'svc-connector@corp.example.com'
    >>> bind_dn('svc-connector@corp.example.com', 'corp.example.com')
    'svc-connector@corp.example.com'
    >>> bind_dn('CN=svc,DC=corp,DC=example,DC=com', 'corp.example.com')
    'CN=svc,DC=corp,DC=example,DC=com'
    """
    if '@' in username or '=' in username:
        return username
    return f'{username}@{domain}'


def license_server_health_url(address: str) -> str:
    return f'http://{address}/health'


class ReadinessGates:

    def __init__(
            self,
            config: ProvisioningConfig,
            package_manager: PackageManager,
            directory_tool: DirectoryTool,
            *,
            resolve: Callable[[str], bool] = domain_resolves,
            connect: Callable[[str, int], bool] = port_accepts_connections,
            http_ok: Callable[[str], bool] = http_health_ok,
            sleep: Callable[[float], None] = time.sleep,
            ):
        self._config = config
        self._package_manager = package_manager
        self._directory_tool = directory_tool
        self._resolve = resolve
        self._connect = connect
        self._http_ok = http_ok
        self._sleep = sleep

    def _short(self, description, probe):
        return RetryPolicy(
            description,
            probe,
            self._config.short_gate_timeout_sec,
            self._config.short_gate_interval_sec,
            )

    def _long(self, description, probe):
        return RetryPolicy(
            description,
            probe,
            self._config.long_gate_timeout_sec,
            self._config.long_gate_interval_sec,
            )

    def _run(self, policy: RetryPolicy) -> Outcome:
        outcome = run_with_retries(policy, sleep=self._sleep)
        if outcome is Outcome.EXHAUSTED:
            _logger.warning("Gate not passed, continue anyway: %s", policy.description)
        return outcome

    def wait_for_directory_service(self, secrets: ResolvedSecrets) -> Dict[str, Outcome]:
        config = self._config
        config.require('ad_username', 'ad_domain', 'ad_domain_controller')
        user = bind_dn(config.ad_username, config.ad_domain)
        outcomes = {}
        outcomes['package_index'] = self._run(self._short(
            "package index updated",
            self._package_manager.update_index,
            ))
        outcomes['directory_utility'] = self._run(self._short(
            f"{DIRECTORY_UTILITY_PACKAGE} installed",
            lambda: self._package_manager.install(DIRECTORY_UTILITY_PACKAGE),
            ))
        with command_echo.suppressed():
            outcomes['ad_bind'] = self._run(self._long(
                f"AD service account binds to {config.ad_domain_controller}",
                lambda: self._directory_tool.can_bind(
                    config.ad_domain_controller, user, secrets.ad_password),
                ))
        outcomes['domain_resolves'] = self._run(self._long(
            f"{config.ad_domain} resolves",
            lambda: self._resolve(config.ad_domain),
            ))
        outcomes['ldaps_port'] = self._run(self._long(
            f"{config.ad_domain_controller}:{LDAPS_PORT} accepts connections",
            lambda: self._connect(config.ad_domain_controller, LDAPS_PORT),
            ))
        return outcomes

    def wait_for_licensing_service(self) -> Optional[Outcome]:
        address = self._config.license_server_address
        if not address:
            _logger.info("No license server configured: skip")
            return None
        url = license_server_health_url(address)
        return self._run(self._long(
            f"{url} returns 200",
            lambda: self._http_ok(url),
            ))
