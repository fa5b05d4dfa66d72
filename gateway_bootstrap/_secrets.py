# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import base64
import binascii
import logging
import os
from abc import ABCMeta
from abc import abstractmethod
from pathlib import Path
from typing import NamedTuple
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError
from botocore.exceptions import ClientError
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from gateway_bootstrap._config import ProvisioningConfig
from gateway_bootstrap._errors import ConfigError
from gateway_bootstrap._errors import SecretDecryptionFailed
from gateway_bootstrap._logging import redact_secrets
from gateway_bootstrap._shell import command_echo

_logger = logging.getLogger(__name__)

_PRIVATE_KEY_PASSWORD_ENV_NAME = 'PRIVATE_KEY_PASSWORD'


class DecryptError(Exception):
    pass


class KeyService(metaclass=ABCMeta):

    @abstractmethod
    def decrypt(self, ciphertext: str) -> str:
        """Decrypt base64-encoded ciphertext.

        Raise DecryptError with a message that contains no secret material.
        """
        pass


class KmsKeyService(KeyService):

    def __init__(self, key_id: str, region: Optional[str] = None):
        self._key_id = key_id
        self._client = boto3.client('kms', region_name=region or None)

    def __repr__(self):
        return f'<{self.__class__.__name__} {self._key_id}>'

    def decrypt(self, ciphertext):
        blob = _b64decode(ciphertext)
        try:
            response = self._client.decrypt(CiphertextBlob=blob, KeyId=self._key_id)
        except ClientError as e:
            raise DecryptError(e.response['Error'].get('Code', 'ClientError'))
        except BotoCoreError as e:
            raise DecryptError(type(e).__name__)
        return response['Plaintext'].decode('utf-8')


class PrivateKeyService(KeyService):

    def __init__(self, private_key_path: Path):
        password = os.environ.get(_PRIVATE_KEY_PASSWORD_ENV_NAME)
        if password is not None:
            password = password.encode()
        _logger.debug("Loading PEM private key %s", private_key_path)
        try:
            self._private_key = load_pem_private_key(private_key_path.read_bytes(), password)
        except (OSError, TypeError, ValueError) as e:
            raise ConfigError(f"Failed to load {private_key_path}: {e}")
        self._path = private_key_path

    def __repr__(self):
        return f'<{self.__class__.__name__} {self._path}>'

    def decrypt(self, ciphertext):
        try:
            data = self._private_key.decrypt(_b64decode(ciphertext), padding.PKCS1v15())
        except ValueError:
            raise DecryptError("Decryption failed")
        return data.decode('utf-8')


def _b64decode(ciphertext: str) -> bytes:
    try:
        return base64.b64decode(ciphertext, validate=True)
    except binascii.Error:
        raise DecryptError("Not a base64 string")


def make_key_service(config: ProvisioningConfig) -> Optional[KeyService]:
    if config.kms_key_id:
        return KmsKeyService(config.kms_key_id, config.aws_region)
    if config.private_key_path:
        return PrivateKeyService(Path(config.private_key_path))
    return None


class ResolvedSecrets(NamedTuple):
    registration_code: str
    ad_password: str
    credentials_path: Optional[Path] = None

    def __repr__(self):
        return f'<{self.__class__.__name__} credentials_path={self.credentials_path}>'


def resolve_secrets(config: ProvisioningConfig, key_service: Optional[KeyService]) -> ResolvedSecrets:
    with command_echo.suppressed():
        if key_service is None:
            _logger.info("No key service configured: use secrets as is")
            secrets = ResolvedSecrets(config.registration_code, config.ad_password)
        else:
            _logger.info("Decrypt secrets with %r", key_service)
            secrets = ResolvedSecrets(
                registration_code=_decrypt(key_service, 'registration_code', config.registration_code),
                ad_password=_decrypt(key_service, 'ad_password', config.ad_password),
                credentials_path=_write_credentials(key_service, config),
                )
        redact_secrets.add_secrets([secrets.registration_code, secrets.ad_password])
        return secrets


def _decrypt(key_service: KeyService, name: str, ciphertext: str) -> str:
    if not ciphertext:
        _logger.debug("%s: empty, nothing to decrypt", name)
        return ''
    try:
        return key_service.decrypt(ciphertext)
    except DecryptError as e:
        _logger.error("Cannot decrypt %s: %s", name, e)
        raise SecretDecryptionFailed(name, str(e))


def _write_credentials(key_service: KeyService, config: ProvisioningConfig) -> Optional[Path]:
    if not config.service_account_credentials_encrypted:
        _logger.info("No encrypted service account credentials configured")
        return None
    document = _decrypt(
        key_service,
        'service_account_credentials_encrypted',
        config.service_account_credentials_encrypted,
        )
    path = Path(config.service_account_credentials_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # Mode is set at creation; chmod covers a file that existed before.
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with open(fd, 'w') as f:
        f.write(document)
    path.chmod(0o600)
    _logger.info("Service account credentials written to %s", path)
    return path
