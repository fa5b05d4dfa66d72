# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from abc import ABCMeta
from abc import abstractmethod
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError
from botocore.exceptions import ClientError

_logger = logging.getLogger(__name__)


class BlobStore(metaclass=ABCMeta):

    @abstractmethod
    def fetch(self, key: str, destination: Path) -> bool:
        pass


class S3BlobStore(BlobStore):

    def __init__(self, bucket: str, region: Optional[str] = None):
        self._bucket = bucket
        self._client = boto3.client('s3', region_name=region or None)

    def __repr__(self):
        return f'<{self.__class__.__name__} s3://{self._bucket}>'

    def fetch(self, key, destination):
        _logger.info("Download s3://%s/%s -> %s", self._bucket, key, destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._client.download_file(self._bucket, key, str(destination))
        except ClientError as e:
            _logger.error("Cannot download s3://%s/%s: %s", self._bucket, key, e.response['Error'].get('Code'))
            return False
        except BotoCoreError as e:
            _logger.error("Cannot download s3://%s/%s: %s", self._bucket, key, e)
            return False
        destination.chmod(0o600)
        return True
