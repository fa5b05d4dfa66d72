# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import base64
import logging
import shutil
import stat
import tempfile
import unittest
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.hazmat.primitives.serialization import NoEncryption
from cryptography.hazmat.primitives.serialization import PrivateFormat

from gateway_bootstrap._config import ProvisioningConfig
from gateway_bootstrap._errors import ConfigError
from gateway_bootstrap._errors import SecretDecryptionFailed
from gateway_bootstrap._secrets import DecryptError
from gateway_bootstrap._secrets import PrivateKeyService
from gateway_bootstrap._secrets import resolve_secrets
from gateway_bootstrap._shell import command_echo
from gateway_bootstrap.tests._fakes import FakeKeyService


class TestResolveSecrets(unittest.TestCase):

    def setUp(self):
        self._dir = Path(tempfile.mkdtemp())
        self._credentials_path = self._dir / 'creds' / 'service-account.json'

    def tearDown(self):
        shutil.rmtree(self._dir)

    def test_passthrough_is_byte_for_byte(self):
        registration_code = ' Rég-code\twith spaces '
        ad_password = 'p@ss"word\'$(x)'
        config = ProvisioningConfig(registration_code=registration_code, ad_password=ad_password)
        secrets = resolve_secrets(config, None)
        self.assertEqual(secrets.registration_code.encode(), registration_code.encode())
        self.assertEqual(secrets.ad_password.encode(), ad_password.encode())
        self.assertIsNone(secrets.credentials_path)
        self.assertTrue(command_echo.is_enabled())

    def test_decrypt_mode(self):
        config = ProvisioningConfig(
            registration_code='enc:code-123',
            ad_password='enc:pw-456',
            service_account_credentials_encrypted='enc:{"client_id": "a", "client_secret": "b"}',
            service_account_credentials_path=str(self._credentials_path),
            )
        key_service = FakeKeyService()
        secrets = resolve_secrets(config, key_service)
        self.assertEqual(secrets.registration_code, 'code-123')
        self.assertEqual(secrets.ad_password, 'pw-456')
        self.assertEqual(secrets.credentials_path, self._credentials_path)
        self.assertEqual(self._credentials_path.read_text(), '{"client_id": "a", "client_secret": "b"}')
        self.assertEqual(stat.S_IMODE(self._credentials_path.stat().st_mode), 0o600)
        self.assertEqual(key_service.echo_states, [False, False, False])
        self.assertTrue(command_echo.is_enabled())

    def test_credentials_overwritten(self):
        self._credentials_path.parent.mkdir(parents=True)
        self._credentials_path.write_text('old content that is longer than the new one')
        config = ProvisioningConfig(
            registration_code='enc:code',
            ad_password='enc:pw',
            service_account_credentials_encrypted='enc:new',
            service_account_credentials_path=str(self._credentials_path),
            )
        resolve_secrets(config, FakeKeyService())
        self.assertEqual(self._credentials_path.read_text(), 'new')

    def test_decrypt_error_restores_echo(self):
        config = ProvisioningConfig(registration_code='enc:code', ad_password='not encrypted')
        with self.assertRaises(SecretDecryptionFailed) as cm:
            resolve_secrets(config, FakeKeyService())
        self.assertEqual(cm.exception.name, 'ad_password')
        self.assertEqual(cm.exception.exit_code, 1)
        self.assertTrue(command_echo.is_enabled())

    def test_error_does_not_leak_secret(self):
        config = ProvisioningConfig(registration_code='enc:code', ad_password='plain-secret-value')
        with self.assertLogs('gateway_bootstrap', logging.DEBUG) as logs:
            with self.assertRaises(SecretDecryptionFailed) as cm:
                resolve_secrets(config, FakeKeyService())
        self.assertNotIn('plain-secret-value', str(cm.exception))
        for line in logs.output:
            self.assertNotIn('plain-secret-value', line)

    def test_repr_hides_values(self):
        secrets = resolve_secrets(ProvisioningConfig(registration_code='rc-1', ad_password='pw-1'), None)
        self.assertNotIn('rc-1', repr(secrets))
        self.assertNotIn('pw-1', repr(secrets))


class TestPrivateKeyService(unittest.TestCase):

    def setUp(self):
        self._dir = Path(tempfile.mkdtemp())
        self._private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        self._key_path = self._dir / 'key.pem'
        self._key_path.write_bytes(self._private_key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()))

    def tearDown(self):
        shutil.rmtree(self._dir)

    def test_decrypt(self):
        encrypted = self._private_key.public_key().encrypt(b'directory password', padding.PKCS1v15())
        key_service = PrivateKeyService(self._key_path)
        self.assertEqual(key_service.decrypt(base64.b64encode(encrypted).decode()), 'directory password')

    def test_not_base64(self):
        key_service = PrivateKeyService(self._key_path)
        with self.assertRaises(DecryptError):
            key_service.decrypt('not base64 at all!')

    def test_missing_key_file(self):
        with self.assertRaises(ConfigError) as cm:
            PrivateKeyService(self._dir / 'absent.pem')
        self.assertEqual(cm.exception.exit_code, 1)

    def test_key_file_not_pem(self):
        self._key_path.write_text('not a key\n')
        with self.assertRaises(ConfigError):
            PrivateKeyService(self._key_path)


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)7s %(name)s %(message).5000s",
        )
    unittest.main()
