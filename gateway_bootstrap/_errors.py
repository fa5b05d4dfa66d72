# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from typing import Collection


class ProvisioningFailed(Exception):
    exit_code = 1


class ConfigError(ProvisioningFailed):
    pass


class SecretDecryptionFailed(ProvisioningFailed):

    def __init__(self, name: str, reason: str):
        super().__init__(f"Cannot decrypt {name}: {reason}")
        self.name = name


class TokenAcquisitionFailed(ProvisioningFailed):

    def __init__(self, returncode: int):
        super().__init__(f"Token helper failed with exit status {returncode}")
        self.returncode = returncode


class MissingCredentials(ProvisioningFailed):

    def __init__(self, names: Collection[str]):
        super().__init__(f"Missing required values: {', '.join(names)}")
        self.names = list(names)


class InstallFailed(ProvisioningFailed):

    def __init__(self, attempts: int):
        super().__init__(f"Connector install failed after {attempts} attempts")
        self.attempts = attempts
