# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from pathlib import Path
from typing import Mapping

from gateway_bootstrap._shell import Shell

_logger = logging.getLogger(__name__)

# Buffers and queues sized for many long-lived tunnelled connections.
# See: https://www.kernel.org/doc/Documentation/networking/ip-sysctl.txt
connector_network_settings = {
    'net.core.rmem_max': '16777216',
    'net.core.wmem_max': '16777216',
    'net.ipv4.tcp_rmem': '4096 87380 16777216',
    'net.ipv4.tcp_wmem': '4096 65536 16777216',
    'net.core.netdev_max_backlog': '30000',
    'net.core.somaxconn': '4096',
    'net.ipv4.tcp_max_syn_backlog': '8192',
    }


def configure_network_if_absent(path: Path, settings: Mapping[str, str], shell: Shell) -> bool:
    """Write sysctl settings and apply them unless the file is already there.

    Only existence is checked: changed settings do not update an existing file.
    Return whether the settings were written.
    """
    if path.exists():
        _logger.info("Network settings already configured in %s: skip", path)
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(''.join(f'{key} = {value}\n' for key, value in settings.items()))
    _logger.info("Network settings written to %s", path)
    result = shell.run(['sysctl', '-p', str(path)])
    if result.returncode != 0:
        _logger.warning("Failed to apply %s: exit status %d", path, result.returncode)
    return True
