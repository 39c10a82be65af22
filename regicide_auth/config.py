"""
Configuration for the session functions.

Plain settings are read from the environment when this module is imported.
The signing key, password salt and table name are secrets: they are loaded
once per process by :func:`load_config`, from the environment if
``SIGNING_KEY``, ``PASSWORD_SALT`` and ``TABLE_NAME`` are all set, otherwise
from AWS Secrets Manager.
"""

import json
import os
from importlib import resources
from typing import NamedTuple, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError as ModelValidationError

from . import domain
from .accounts.passwords import MIN_SALT_LENGTH
from .auth.tokens import MIN_KEY_LENGTH
from .exceptions import ConfigurationError

SECRET_ID = os.environ.get('SECRET_ID', 'api/salt')
"""
Secrets Manager id of the service secret.

The secret is a JSON object ``{"table": ..., "sigkey": ..., "salt": ...}``.
"""

AWS_REGION = os.environ.get('AWS_REGION', None)
DYNAMODB_ENDPOINT = os.environ.get('DYNAMODB_ENDPOINT', None)
"""Alternate DynamoDB endpoint, e.g. a local DynamoDB for development."""

TABLE_NAME = os.environ.get('TABLE_NAME', None)
SIGNING_KEY = os.environ.get('SIGNING_KEY', None)
PASSWORD_SALT = os.environ.get('PASSWORD_SALT', None)

DEFAULT_ACCOUNT_PATH = os.environ.get('DEFAULT_ACCOUNT_PATH', None)
"""Local JSON file with the default account; takes precedence over S3."""

DEFAULT_ACCOUNT_BUCKET = os.environ.get('DEFAULT_ACCOUNT_BUCKET',
                                        'regicide-config')
DEFAULT_ACCOUNT_KEY = os.environ.get('DEFAULT_ACCOUNT_KEY',
                                     'default-account.json')
DEFAULT_ACCOUNT_SOURCE = os.environ.get('DEFAULT_ACCOUNT_SOURCE', 's3')
"""Either ``s3`` or ``package``, for the template bundled with this package."""

TOKEN_LIFETIME_DAYS = int(os.environ.get('TOKEN_LIFETIME_DAYS', '365'))

DEADLINE_MARGIN_MS = int(os.environ.get('DEADLINE_MARGIN_MS', '500'))
"""Time kept in reserve at the end of an invocation for the response."""

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class Config(NamedTuple):
    """Secrets needed by the session functions."""

    table: str
    signing_key: bytes
    salt: Optional[bytes] = None

    def check(self, require_salt: bool = True) -> 'Config':
        """
        Make sure that the secrets are usable.

        Raises
        ------
        :class:`.ConfigurationError`

        """
        if not self.table:
            raise ConfigurationError('Table name is not set')
        if not self.signing_key or len(self.signing_key) < MIN_KEY_LENGTH:
            raise ConfigurationError('Signing key must be at least'
                                     f' {MIN_KEY_LENGTH} bytes')
        if require_salt and (not self.salt
                             or len(self.salt) < MIN_SALT_LENGTH):
            raise ConfigurationError('Password salt must be at least'
                                     f' {MIN_SALT_LENGTH} bytes')
        return self


def _encode(value: Optional[str]) -> Optional[bytes]:
    return value.encode('utf-8') if value else None


def parse_secret(raw: str) -> Config:
    """Read the service secret."""
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ConfigurationError('Service secret is not valid JSON') from e
    if not isinstance(data, dict):
        raise ConfigurationError('Service secret must be a JSON object')
    return Config(table=data.get('table') or '',
                  signing_key=_encode(data.get('sigkey')) or b'',
                  salt=_encode(data.get('salt')))


def load_config(require_salt: bool = True, client=None) -> Config:
    """
    Load and check the service secrets.

    Parameters
    ----------
    require_salt : bool
        Only registration and login need the password salt.
    client : optional
        A Secrets Manager client; one is created if not given.

    Raises
    ------
    :class:`.ConfigurationError`

    """
    if TABLE_NAME and SIGNING_KEY and (PASSWORD_SALT or not require_salt):
        config = Config(table=TABLE_NAME, signing_key=_encode(SIGNING_KEY),
                        salt=_encode(PASSWORD_SALT))
        return config.check(require_salt)

    if client is None:
        client = boto3.client('secretsmanager', region_name=AWS_REGION)
    try:
        response = client.get_secret_value(SecretId=SECRET_ID)
    except (ClientError, BotoCoreError) as e:
        raise ConfigurationError(f'Could not read secret {SECRET_ID}') from e
    raw = response.get('SecretString')
    if raw is None:
        raw = response['SecretBinary'].decode('utf-8')
    return parse_secret(raw).check(require_salt)


def parse_default_account(raw: str) -> domain.Account:
    """
    Read a default account template.

    Raises
    ------
    :class:`.ConfigurationError`
        If the template is malformed, or has no basic info or no cards.

    """
    try:
        account = domain.Account.model_validate_json(raw)
    except ModelValidationError as e:
        raise ConfigurationError('Default account is malformed') from e
    if account.info is None:
        raise ConfigurationError('Default account has no basic info')
    if not account.cards:
        raise ConfigurationError('Default account has no cards')
    return account


def load_default_account(client=None) -> domain.Account:
    """
    Load the template that new accounts are seeded from.

    The template is read from :const:`DEFAULT_ACCOUNT_PATH` if it is set,
    otherwise from the bundled template or from S3, per
    :const:`DEFAULT_ACCOUNT_SOURCE`.
    """
    if DEFAULT_ACCOUNT_PATH:
        try:
            with open(DEFAULT_ACCOUNT_PATH, encoding='utf-8') as f:
                return parse_default_account(f.read())
        except OSError as e:
            raise ConfigurationError('Could not read default account from'
                                     f' {DEFAULT_ACCOUNT_PATH}') from e

    if DEFAULT_ACCOUNT_SOURCE == 'package':
        template = resources.files('regicide_auth') / 'data' \
            / 'default-account.json'
        raw = template.read_text(encoding='utf-8')
        return parse_default_account(raw)

    if client is None:
        client = boto3.client('s3', region_name=AWS_REGION)
    try:
        response = client.get_object(Bucket=DEFAULT_ACCOUNT_BUCKET,
                                     Key=DEFAULT_ACCOUNT_KEY)
        raw = response['Body'].read().decode('utf-8')
    except (ClientError, BotoCoreError) as e:
        raise ConfigurationError('Could not read default account from'
                                 f' s3://{DEFAULT_ACCOUNT_BUCKET}/'
                                 f'{DEFAULT_ACCOUNT_KEY}') from e
    return parse_default_account(raw)
