# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Print a one-time connector registration token.

The service account credential document is a JSON object
with "client_id" and "client_secret".
The token is the only thing written to stdout.
Diagnostics go to stderr and never contain the token or the credentials.
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Mapping
from typing import Sequence

import requests

_logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT_SEC = 30


class ManagementApiError(Exception):
    pass


class ManagementApi:

    def __init__(self, base_url: str, client_id: str, client_secret: str):
        self._base_url = base_url.rstrip('/')
        self._session = requests.Session()
        self._session.headers['Accept'] = 'application/json'
        self._login(client_id, client_secret)

    def __repr__(self):
        return f'<{self.__class__.__name__} {self._base_url}>'

    def _login(self, client_id, client_secret):
        data = self._request('POST', 'oauth/token', data={
            'grant_type': 'client_credentials',
            'client_id': client_id,
            'client_secret': client_secret,
            })
        self._session.headers['Authorization'] = 'Bearer ' + data['access_token']

    def create_connector_token(self) -> str:
        data = self._request('POST', 'connectors/tokens', json={})
        return data['token']

    def _request(self, method, path, **kwargs) -> Mapping:
        url = f'{self._base_url}/{path}'
        _logger.debug("%s %s", method, url)
        try:
            response = self._session.request(method, url, timeout=_REQUEST_TIMEOUT_SEC, **kwargs)
        except requests.RequestException as e:
            raise ManagementApiError(f"{method} {url}: {type(e).__name__}")
        if not response.ok:
            raise ManagementApiError(f"{method} {url}: HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError:
            raise ManagementApiError(f"{method} {url}: response is not JSON")


def _read_credentials(path: Path):
    try:
        document = json.loads(path.read_text())
        return document['client_id'], document['client_secret']
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise ManagementApiError(f"Cannot read credentials from {path}: {type(e).__name__}")


def main(args: Sequence[str]) -> int:
    parser = argparse.ArgumentParser(description="Request a connector registration token.")
    parser.add_argument('--credentials', type=Path, required=True, help="Service account credential JSON.")
    parser.add_argument('--api-url', required=True, help="Management API base URL.")
    parsed_args = parser.parse_args(args)
    try:
        client_id, client_secret = _read_credentials(parsed_args.credentials)
        api = ManagementApi(parsed_args.api_url, client_id, client_secret)
        token = api.create_connector_token()
    except (ManagementApiError, KeyError) as e:
        _logger.error("Cannot get connector token: %s", e)
        return 1
    print(token)
    return 0


if __name__ == '__main__':
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr)
    exit(main(sys.argv[1:]))
