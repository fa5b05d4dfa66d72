# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Turn a freshly launched VM into a remote access gateway node.

Run as root once the VM has booted:

    python3 -m gateway_bootstrap.bootstrap --config /etc/gateway-bootstrap/bootstrap.ini

Exit status is 0 when the connector is installed (or was installed before)
and 1 when provisioning failed. See the log file for details.

With --dry-run-tls-check, only check that the TLS key and certificate
can be fetched from the bucket; nothing is installed.
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from gateway_bootstrap._blob_store import S3BlobStore
from gateway_bootstrap._config import ProvisioningConfig
from gateway_bootstrap._errors import ConfigError
from gateway_bootstrap._install import check_tls_objects
from gateway_bootstrap._logging import init_logging
from gateway_bootstrap._sequencer import InstallSequencer

_logger = logging.getLogger(__name__)


def main(args: Sequence[str]) -> int:
    parser = argparse.ArgumentParser(description="Provision remote access gateway node.")
    parser.add_argument(
        '--config',
        type=Path,
        action='append',
        required=True,
        help="INI file; may be repeated, later files override earlier ones.")
    parser.add_argument(
        '--dry-run-tls-check',
        action='store_true',
        help="Only check that TLS objects can be fetched, then exit.")
    parsed_args = parser.parse_args(args)
    try:
        config = ProvisioningConfig.load(*parsed_args.config)
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO)
        _logger.error("Cannot load config: %s", e)
        return e.exit_code
    init_logging(Path(config.log_file))
    if parsed_args.dry_run_tls_check:
        return _check_tls(config)
    _logger.info("Provisioning started with %r", config)
    try:
        sequencer = InstallSequencer.from_config(config)
    except ConfigError as e:
        _logger.error("Cannot prepare provisioning: %s", e)
        return e.exit_code
    exit_code = sequencer.run()
    _logger.info("Provisioning finished with exit status %d", exit_code)
    return exit_code


def _check_tls(config: ProvisioningConfig) -> int:
    _logger.info("TLS check started with %r", config)
    try:
        config.require('tls_bucket', 'tls_key_object', 'tls_cert_object')
    except ConfigError as e:
        _logger.error("Cannot check TLS objects: %s", e)
        return e.exit_code
    if not check_tls_objects(config, S3BlobStore(config.tls_bucket, config.aws_region)):
        _logger.error("TLS check failed")
        return 1
    _logger.info("TLS check passed")
    return 0


if __name__ == '__main__':
    exit(main(sys.argv[1:]))
