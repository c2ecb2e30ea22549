"""Credentials for the deployment repository.

The credentials file selects exactly one authentication method:

    auth:
      basic:
        username: bot
        password: secret

    auth:
      bearerToken:
        token: secret

    auth:
      sshPrivateKey:
        privateKey: <base64 encoded private key>
        knownHosts: /path/to/known_hosts

Credentials are handed to git through environment variables so they never
appear on a command line or in the repository configuration.
"""

import base64
import binascii
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shlex
from typing import Any

import aiofiles
import yaml

from .exceptions import InputException

__all__ = [
    "BasicAuth",
    "BearerToken",
    "SSHPrivateKey",
    "GitConfig",
    "read_git_config",
]

_LOGGER = logging.getLogger(__name__)

SSH_KEY_FILE = "deploy_key"


@dataclass(frozen=True)
class BasicAuth:
    """Username and password for http(s) remotes."""

    username: str
    password: str

    def validate(self) -> None:
        if not self.username or not self.password:
            raise InputException(
                "invalid basic authentication: username and password must be provided"
            )

    def header(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
        return f"Authorization: Basic {token}"


@dataclass(frozen=True)
class BearerToken:
    """Token for http(s) remotes."""

    token: str

    def validate(self) -> None:
        if not self.token:
            raise InputException("invalid bearer token: token must be provided")

    def header(self) -> str:
        return f"Authorization: Bearer {self.token}"


@dataclass(frozen=True)
class SSHPrivateKey:
    """Private key for ssh remotes."""

    private_key: str
    """The base64 encoded private key."""

    known_hosts: str | None = None
    """Optional path of a known hosts file."""

    def validate(self) -> None:
        if not self.private_key:
            raise InputException("invalid SSH private key: private key must be provided")
        self.decode_private_key()

    def decode_private_key(self) -> bytes:
        try:
            return base64.b64decode(self.private_key, validate=True)
        except (binascii.Error, ValueError) as err:
            raise InputException(f"failed to decode SSH private key: {err}") from err


def _parse_method(doc: dict[str, Any], key: str) -> dict[str, Any] | None:
    if (value := doc.get(key)) is None:
        return None
    if not isinstance(value, dict):
        raise InputException(f"Invalid git config, expected auth.{key} to be a mapping")
    return value


@dataclass(frozen=True)
class GitConfig:
    """Authentication settings for the deployment repository."""

    basic: BasicAuth | None = None
    bearer_token: BearerToken | None = None
    ssh_private_key: SSHPrivateKey | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any] | None) -> "GitConfig":
        """Parse a credentials document without validating it."""
        if doc is None:
            doc = {}
        if not isinstance(doc, dict):
            raise InputException(f"Invalid git config, expected a mapping: {doc}")
        auth = doc.get("auth") or {}
        if not isinstance(auth, dict):
            raise InputException("Invalid git config, expected auth to be a mapping")
        basic = _parse_method(auth, "basic")
        bearer = _parse_method(auth, "bearerToken")
        ssh = _parse_method(auth, "sshPrivateKey")
        return cls(
            basic=(
                BasicAuth(
                    username=str(basic.get("username") or ""),
                    password=str(basic.get("password") or ""),
                )
                if basic is not None
                else None
            ),
            bearer_token=(
                BearerToken(token=str(bearer.get("token") or ""))
                if bearer is not None
                else None
            ),
            ssh_private_key=(
                SSHPrivateKey(
                    private_key=str(ssh.get("privateKey") or ""),
                    known_hosts=ssh.get("knownHosts") or None,
                )
                if ssh is not None
                else None
            ),
        )

    def validate(self) -> None:
        """Check that exactly one complete authentication method is configured."""
        methods = [
            method
            for method in (self.basic, self.bearer_token, self.ssh_private_key)
            if method is not None
        ]
        if len(methods) > 1:
            raise InputException(
                "multiple authentication methods provided, only one is allowed"
            )
        if not methods:
            raise InputException(
                "no authentication method provided, at least one is required"
            )
        methods[0].validate()

    def environment(self, workdir: Path) -> dict[str, str]:
        """Return the environment variables that make git use these credentials.

        An ssh private key is written to a file with restricted permissions in
        workdir, which must be owned by the current run.
        """
        if self.ssh_private_key is not None:
            key_file = workdir / SSH_KEY_FILE
            key_file.write_bytes(self.ssh_private_key.decode_private_key())
            os.chmod(key_file, 0o600)
            ssh_command = [
                "ssh",
                "-i",
                str(key_file),
                "-o",
                "IdentitiesOnly=yes",
            ]
            if self.ssh_private_key.known_hosts:
                ssh_command.extend(
                    [
                        "-o",
                        f"UserKnownHostsFile={self.ssh_private_key.known_hosts}",
                        "-o",
                        "StrictHostKeyChecking=yes",
                    ]
                )
            else:
                ssh_command.extend(["-o", "StrictHostKeyChecking=accept-new"])
            return {"GIT_SSH_COMMAND": shlex.join(ssh_command)}
        method = self.basic or self.bearer_token
        if method is None:
            return {}
        return {
            "GIT_CONFIG_COUNT": "1",
            "GIT_CONFIG_KEY_0": "http.extraHeader",
            "GIT_CONFIG_VALUE_0": method.header(),
        }


async def read_git_config(path: Path) -> GitConfig:
    """Read, parse and validate a credentials file."""
    try:
        async with aiofiles.open(path) as config_file:
            content = await config_file.read()
    except OSError as err:
        raise InputException(f"failed to read git config file {path}: {err}") from err
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise InputException(f"failed to parse git config file {path}: {err}") from err
    config = GitConfig.parse_doc(doc)
    config.validate()
    return config
