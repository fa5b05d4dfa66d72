# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import socket
import unittest
from http.server import BaseHTTPRequestHandler
from http.server import HTTPServer
from threading import Thread

from gateway_bootstrap._config import ProvisioningConfig
from gateway_bootstrap._gates import DirectoryTool
from gateway_bootstrap._gates import PackageManager
from gateway_bootstrap._gates import ReadinessGates
from gateway_bootstrap._gates import http_health_ok
from gateway_bootstrap._gates import port_accepts_connections
from gateway_bootstrap._retry import Outcome
from gateway_bootstrap._secrets import ResolvedSecrets
from gateway_bootstrap._shell import TIMED_OUT_EXIT_STATUS
from gateway_bootstrap.tests._fakes import FakeProbe
from gateway_bootstrap.tests._fakes import FakeShell
from gateway_bootstrap.tests._fakes import FakeSleep

_config = ProvisioningConfig(
    ad_username='svc-connector',
    ad_domain='corp.example.com',
    ad_domain_controller='dc1.corp.example.com',
    )

_secrets = ResolvedSecrets('rc', 'directory-password')


class TestDirectoryGates(unittest.TestCase):

    def setUp(self):
        self._shell = FakeShell()
        self._sleep = FakeSleep()
        self._resolve = FakeProbe(failures=0)
        self._connect = FakeProbe(failures=0)

    def _gates(self, config=_config):
        return ReadinessGates(
            config,
            PackageManager(self._shell),
            DirectoryTool(self._shell),
            resolve=self._resolve,
            connect=self._connect,
            http_ok=FakeProbe(failures=0),
            sleep=self._sleep,
            )

    def test_all_ready(self):
        outcomes = self._gates().wait_for_directory_service(_secrets)
        self.assertEqual(list(outcomes), [
            'package_index', 'directory_utility', 'ad_bind', 'domain_resolves', 'ldaps_port'])
        self.assertTrue(all(o is Outcome.SUCCEEDED for o in outcomes.values()))
        self.assertEqual(self._shell.programs(), ['apt-get', 'apt-get', 'ldapwhoami'])
        self.assertEqual(self._sleep.delays, [])

    def test_bind_uses_principal_and_hides_password(self):
        with self.assertLogs('gateway_bootstrap', logging.DEBUG) as logs:
            self._gates().wait_for_directory_service(_secrets)
        [bind] = self._shell.calls_to('ldapwhoami')
        self.assertFalse(bind.echo_enabled)
        self.assertIn('svc-connector@corp.example.com', bind.args)
        self.assertIn('ldap://dc1.corp.example.com', bind.args)
        for line in logs.output:
            self.assertNotIn('directory-password', line)

    def test_exhausted_gates_do_not_stop_sequence(self):
        self._shell.set_returncodes('apt-get', 100)
        self._shell.set_returncodes('ldapwhoami', 49)
        self._resolve = FakeProbe(failures=1000)
        outcomes = self._gates().wait_for_directory_service(_secrets)
        self.assertIs(outcomes['package_index'], Outcome.EXHAUSTED)
        self.assertIs(outcomes['directory_utility'], Outcome.EXHAUSTED)
        self.assertIs(outcomes['ad_bind'], Outcome.EXHAUSTED)
        self.assertIs(outcomes['domain_resolves'], Outcome.EXHAUSTED)
        self.assertIs(outcomes['ldaps_port'], Outcome.SUCCEEDED)
        # 25 / 5 sec: 6 attempts each; 1200 / 10 sec: 121 attempts each.
        self.assertEqual(len(self._shell.calls_to('apt-get')), 12)
        self.assertEqual(len(self._shell.calls_to('ldapwhoami')), 121)
        self.assertEqual(self._resolve.calls, 121)

    def test_gate_waits_until_ready(self):
        self._connect = FakeProbe(failures=3)
        outcomes = self._gates().wait_for_directory_service(_secrets)
        self.assertIs(outcomes['ldaps_port'], Outcome.SUCCEEDED)
        self.assertEqual(self._connect.calls, 4)
        self.assertEqual(self._sleep.delays, [10, 10, 10])

    def test_timed_out_bind_counts_as_failed_attempt(self):
        self._shell.set_returncodes('ldapwhoami', TIMED_OUT_EXIT_STATUS, TIMED_OUT_EXIT_STATUS, 0)
        outcomes = self._gates().wait_for_directory_service(_secrets)
        self.assertIs(outcomes['ad_bind'], Outcome.SUCCEEDED)
        self.assertEqual(len(self._shell.calls_to('ldapwhoami')), 3)
        self.assertIs(outcomes['ldaps_port'], Outcome.SUCCEEDED)

    def test_timed_out_package_index_does_not_stop_sequence(self):
        self._shell.set_returncodes('apt-get', TIMED_OUT_EXIT_STATUS)
        outcomes = self._gates().wait_for_directory_service(_secrets)
        self.assertIs(outcomes['package_index'], Outcome.EXHAUSTED)
        self.assertIs(outcomes['ad_bind'], Outcome.SUCCEEDED)

    def test_licensing_skipped_without_address(self):
        self.assertIsNone(self._gates().wait_for_licensing_service())

    def test_licensing_polled(self):
        http_ok = FakeProbe(failures=2)
        gates = ReadinessGates(
            _config._replace(license_server_address='10.0.0.5:8080'),
            PackageManager(self._shell),
            DirectoryTool(self._shell),
            http_ok=http_ok,
            sleep=self._sleep,
            )
        self.assertIs(gates.wait_for_licensing_service(), Outcome.SUCCEEDED)
        self.assertEqual(http_ok.calls, 3)


class _HealthHandler(BaseHTTPRequestHandler):
    status = 200

    def do_GET(self):  # noqa PyPep8Naming
        self.send_response(self.status if self.path == '/health' else 404)
        self.end_headers()

    def log_message(self, format, *args):  # noqa PyShadowingBuiltins
        pass


class TestProbes(unittest.TestCase):

    def setUp(self):
        self._server = HTTPServer(('127.0.0.1', 0), _HealthHandler)
        self._thread = Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        self._address = '127.0.0.1:%d' % self._server.server_address[1]

    def tearDown(self):
        self._server.shutdown()
        self._server.server_close()
        self._thread.join()

    def test_http_health(self):
        self.assertTrue(http_health_ok(f'http://{self._address}/health'))
        self.assertFalse(http_health_ok(f'http://{self._address}/other'))

    def test_http_unreachable(self):
        with socket.socket() as s:
            s.bind(('127.0.0.1', 0))
            port = s.getsockname()[1]
        self.assertFalse(http_health_ok(f'http://127.0.0.1:{port}/health', timeout_sec=1))

    def test_port(self):
        [host, port] = self._address.split(':')
        self.assertTrue(port_accepts_connections(host, int(port)))


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)7s %(name)s %(message).5000s",
        )
    unittest.main()
