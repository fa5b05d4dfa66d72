# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import shutil
import tempfile
import unittest
from pathlib import Path

from gateway_bootstrap.bootstrap import main


class TestMain(unittest.TestCase):

    def setUp(self):
        self._dir = Path(tempfile.mkdtemp())
        self._root_handlers = list(logging.getLogger().handlers)
        self._root_level = logging.getLogger().level

    def tearDown(self):
        root = logging.getLogger()
        for handler in root.handlers[:]:
            if handler not in self._root_handlers:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(self._root_level)
        shutil.rmtree(self._dir)

    def test_missing_config_file(self):
        with self.assertLogs('gateway_bootstrap.bootstrap', logging.ERROR):
            exit_code = main(['--config', str(self._dir / 'absent.ini')])
        self.assertEqual(exit_code, 1)

    def test_invalid_config_value(self):
        path = self._dir / 'bootstrap.ini'
        path.write_text('[defaults]\ninstall_retries = many\n')
        with self.assertLogs('gateway_bootstrap.bootstrap', logging.ERROR):
            exit_code = main(['--config', str(path)])
        self.assertEqual(exit_code, 1)

    def test_config_required(self):
        with self.assertRaises(SystemExit):
            main([])

    def test_missing_private_key_file(self):
        path = self._dir / 'bootstrap.ini'
        path.write_text(
            '[defaults]\n'
            f'log_file = {self._dir / "bootstrap.log"}\n'
            f'private_key_path = {self._dir / "absent.pem"}\n')
        with self.assertLogs('gateway_bootstrap.bootstrap', logging.ERROR) as logs:
            exit_code = main(['--config', str(path)])
        self.assertEqual(exit_code, 1)
        self.assertIn('absent.pem', logs.output[0])

    def test_tls_check_without_tls_objects(self):
        install_dir = self._dir / 'connector'
        sysctl_file = self._dir / 'sysctl.conf'
        path = self._dir / 'bootstrap.ini'
        path.write_text(
            '[defaults]\n'
            f'log_file = {self._dir / "bootstrap.log"}\n'
            f'install_dir = {install_dir}\n'
            f'sysctl_file = {sysctl_file}\n'
            'tls_bucket = gateway-tls\n'
            'tls_key_object = gw-01/key.pem\n')
        with self.assertLogs('gateway_bootstrap.bootstrap', logging.ERROR) as logs:
            exit_code = main(['--config', str(path), '--dry-run-tls-check'])
        self.assertEqual(exit_code, 1)
        self.assertIn('tls_cert_object', logs.output[0])
        self.assertFalse(install_dir.exists())
        self.assertFalse(sysctl_file.exists())


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)7s %(name)s %(message).5000s",
        )
    unittest.main()
