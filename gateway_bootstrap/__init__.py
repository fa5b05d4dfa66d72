# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Bootstrap of a remote access gateway node.

The node is provisioned by a single sequential run.
Every step either is idempotent or is guarded by an existence check,
so a failed run can simply be repeated.

External programs and services are reached through small classes
(PackageManager, DirectoryTool, Installer, TokenHelper, KeyService, BlobStore)
that can be replaced in tests.

Secrets never reach logs: code that handles them runs with command echo
suppressed, and known secret values are redacted from every log record.
"""
from gateway_bootstrap._blob_store import BlobStore
from gateway_bootstrap._blob_store import S3BlobStore
from gateway_bootstrap._config import ProvisioningConfig
from gateway_bootstrap._errors import ConfigError
from gateway_bootstrap._errors import InstallFailed
from gateway_bootstrap._errors import MissingCredentials
from gateway_bootstrap._errors import ProvisioningFailed
from gateway_bootstrap._errors import SecretDecryptionFailed
from gateway_bootstrap._errors import TokenAcquisitionFailed
from gateway_bootstrap._gates import DirectoryTool
from gateway_bootstrap._gates import PackageManager
from gateway_bootstrap._gates import ReadinessGates
from gateway_bootstrap._install import ConnectorInstall
from gateway_bootstrap._install import InstallState
from gateway_bootstrap._install import Installer
from gateway_bootstrap._install import build_install_args
from gateway_bootstrap._install import check_tls_objects
from gateway_bootstrap._retry import Outcome
from gateway_bootstrap._retry import RetryPolicy
from gateway_bootstrap._retry import run_with_retries
from gateway_bootstrap._secrets import KeyService
from gateway_bootstrap._secrets import KmsKeyService
from gateway_bootstrap._secrets import PrivateKeyService
from gateway_bootstrap._secrets import ResolvedSecrets
from gateway_bootstrap._secrets import resolve_secrets
from gateway_bootstrap._sequencer import InstallSequencer
from gateway_bootstrap._shell import LocalShell
from gateway_bootstrap._shell import Shell
from gateway_bootstrap._shell import command_echo
from gateway_bootstrap._token import TokenHelper
from gateway_bootstrap._token import acquire_token
from gateway_bootstrap._token import validate_preconditions

__all__ = [
    'BlobStore',
    'ConfigError',
    'ConnectorInstall',
    'DirectoryTool',
    'InstallFailed',
    'InstallSequencer',
    'InstallState',
    'Installer',
    'KeyService',
    'KmsKeyService',
    'LocalShell',
    'MissingCredentials',
    'Outcome',
    'PackageManager',
    'PrivateKeyService',
    'ProvisioningConfig',
    'ProvisioningFailed',
    'ReadinessGates',
    'ResolvedSecrets',
    'RetryPolicy',
    'S3BlobStore',
    'SecretDecryptionFailed',
    'Shell',
    'TokenAcquisitionFailed',
    'TokenHelper',
    'acquire_token',
    'build_install_args',
    'check_tls_objects',
    'command_echo',
    'resolve_secrets',
    'run_with_retries',
    'validate_preconditions',
    ]
