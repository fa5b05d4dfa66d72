# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import fnmatch
import logging
import os
import shlex
import socket
import sys
from configparser import ConfigParser
from pathlib import Path
from typing import Mapping
from typing import NamedTuple
from typing import Optional
from typing import Sequence

from gateway_bootstrap._errors import ConfigError

_logger = logging.getLogger(__name__)

_ENV_PREFIX = 'GATEWAY_BOOTSTRAP_'


def read_config(*paths: Path, host: Optional[str] = None) -> Mapping[str, str]:
    """Read and resolve overrides according to versions.

    Optionally add ";v123" to sections like "[gw-??;v45]".
    If not specified, "v0" is assumed.
    Higher versions override lower versions.
    Environment variables GATEWAY_BOOTSTRAP_<KEY> override everything.
    """
    if host is None:
        host = socket.gethostname()
    config_parts = []
    for path_i, path in enumerate(paths):
        config_parser = ConfigParser(interpolation=None)
        config_parser.read(path)
        sections = config_parser.sections()
        for section_i, section in enumerate(sections):
            mask, version = _parse_section_header(section)
            if fnmatch.fnmatch(host, mask):
                _logger.info("Config %s: section %s: read", path, section)
                items = config_parser.items(section)
                config_parts.append((version, path_i, section_i, items))
            else:
                _logger.debug("Config %s: section %s: skip", path, section)
    config_parts.sort()
    config = {}
    for _version, _path_i, _section_i, items in config_parts:
        config.update(items)
    for name, value in os.environ.items():
        if name.startswith(_ENV_PREFIX):
            key = name[len(_ENV_PREFIX):].lower()
            _logger.info("Config: %s: overridden from environment", key)
            config[key] = value
    return config


def _parse_section_header(section):
    """Split section name into host mask and version.

    >>> _parse_section_header('defaults')
    ('*', 0)
    >>> _parse_section_header('gw-*;v3')
    ('gw-*', 3)
    >>> _parse_section_header('gw-01')
    ('gw-01', 0)
    """
    if section == 'defaults':
        return '*', 0
    else:
        mask, semicolon, extra = section.partition(';')
        if not extra:
            return mask, 0
        elif extra.startswith('v'):
            try:
                return mask, int(extra[1:])
            except ValueError:
                raise ConfigError(f"Cannot parse {extra} in {section}")
        else:
            raise ConfigError(f"Unknown {extra} in {section}")


class ProvisioningConfig(NamedTuple):
    registration_code: str = ''
    ad_username: str = ''
    ad_password: str = ''
    ad_domain: str = ''
    ad_domain_controller: str = ''
    ad_domain_group: str = ''
    api_url: str = ''
    # Ciphertext of the service account credential document. Used with a key service only.
    service_account_credentials_encrypted: str = ''
    service_account_credentials_path: str = '/etc/gateway-bootstrap/service-account.json'
    kms_key_id: str = ''
    aws_region: str = ''
    private_key_path: str = ''
    connector_download_url: str = ''
    install_dir: str = '/opt/connector'
    tls_bucket: str = ''
    tls_key_object: str = ''
    tls_cert_object: str = ''
    license_server_address: str = ''
    sync_interval: str = '60'
    log_file: str = '/var/log/gateway-bootstrap.log'
    install_log_file: str = '/var/log/connector-install.log'
    sysctl_file: str = '/etc/sysctl.d/80-connector-network.conf'
    token_helper: str = shlex.join([sys.executable, '-m', 'gateway_bootstrap.token_helper'])
    install_retries: int = 10
    install_retry_delay_sec: float = 60
    short_gate_timeout_sec: float = 25
    short_gate_interval_sec: float = 5
    long_gate_timeout_sec: float = 1200
    long_gate_interval_sec: float = 10

    @classmethod
    def from_mapping(cls, raw: Mapping[str, str]) -> 'ProvisioningConfig':
        unknown = sorted(set(raw) - set(cls._fields))
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        values = {}
        for name, raw_value in raw.items():
            field_type = cls.__annotations__[name]
            try:
                values[name] = field_type(raw_value.strip())
            except ValueError:
                raise ConfigError(f"Config key {name}: cannot parse {raw_value!r} as {field_type.__name__}")
        if values.get('install_retries', 0) < 0:
            raise ConfigError("Config key install_retries: must not be negative")
        for name in (
                'install_retry_delay_sec',
                'short_gate_interval_sec',
                'long_gate_interval_sec',
                ):
            if name in values and values[name] <= 0:
                raise ConfigError(f"Config key {name}: must be positive")
        return cls(**values)

    @classmethod
    def load(cls, *paths: Path) -> 'ProvisioningConfig':
        for path in paths:
            if not path.exists():
                raise ConfigError(f"Config file does not exist: {path}")
        return cls.from_mapping(read_config(*paths))

    def __repr__(self):
        return f'<{self.__class__.__name__} domain={self.ad_domain!r} api={self.api_url!r}>'

    def require(self, *names: str):
        """Check values needed by a code path before it runs.

        All missing names are reported at once.
        """
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise ConfigError(f"Required config values are empty: {', '.join(missing)}")

    def uses_key_service(self) -> bool:
        return bool(self.kms_key_id or self.private_key_path)

    def uses_tls(self) -> bool:
        return bool(self.tls_key_object and self.tls_cert_object)

    def install_path(self) -> Path:
        return Path(self.install_dir)

    def connector_binary(self) -> Path:
        return self.install_path() / 'bin' / 'connector'

    def installer_binary(self) -> Path:
        return self.install_path() / 'connector-installer'

    def token_helper_command(self) -> Sequence[str]:
        return shlex.split(self.token_helper)
