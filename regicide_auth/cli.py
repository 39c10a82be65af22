"""
Command line helpers for development and operations.

Generate a token for an existing account, e.g. to call gated endpoints by
hand. The signing key must be the one that the functions use; set
``SIGNING_KEY`` in your environment (or use the configured secret).

.. code-block:: bash

   $ SIGNING_KEY=... TABLE_NAME=accounts regicide-auth generate-token
   Username: someplayer
   Token id [random]:
   Lifetime in days [365]:

   eyJleHByIjo2Mzg3...

A token minted this way only passes ``verify`` if its token id is the one
stored on the account.

Create the account table (with its e-mail index) in DynamoDB, or in a local
DynamoDB given by ``DYNAMODB_ENDPOINT``:

.. code-block:: bash

   $ DYNAMODB_ENDPOINT=http://localhost:8000 regicide-auth create-table accounts

"""

from datetime import datetime, timedelta

import click
from pytz import UTC

from . import config, domain
from .app_logging import setup_logger
from .auth import tokens
from .exceptions import ConfigurationError, EncodingError, StoreError
from .services.kvstore import DynamoDBStore


@click.group()
@click.option('--log-level', default=config.LOG_LEVEL, show_default=True)
def cli(log_level: str) -> None:
    """Regicide account service tools."""
    setup_logger(log_level.upper())


@cli.command('generate-token')
@click.option('--username', prompt='Username')
@click.option('--token-id', prompt='Token id', default='random')
@click.option('--days', prompt='Lifetime in days', default=365)
def generate_token(username: str, token_id: str = 'random',
                   days: int = 365) -> None:
    """Generate a signed session token for dev/testing purposes."""
    try:
        key = config.load_config(require_salt=False).signing_key
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    if token_id == 'random':
        token_id = tokens.generate_token_id()
    issued = datetime.now(tz=UTC)
    token = domain.AuthToken(user_id=username.lower(), issued=issued,
                             expiration=issued + timedelta(days=days),
                             token_id=token_id)
    try:
        click.echo(tokens.build(token, key))
    except EncodingError as e:
        raise click.ClickException(str(e))


@cli.command('create-table')
@click.argument('table_name')
@click.option('--read-capacity', default=5, show_default=True)
@click.option('--write-capacity', default=5, show_default=True)
def create_table(table_name: str, read_capacity: int = 5,
                 write_capacity: int = 5) -> None:
    """Create the account table and its e-mail index."""
    store = DynamoDBStore(table_name, region_name=config.AWS_REGION,
                          endpoint_url=config.DYNAMODB_ENDPOINT)
    try:
        store.create_table(read_capacity=read_capacity,
                           write_capacity=write_capacity)
    except StoreError as e:
        raise click.ClickException(str(e))
    click.echo(f'Created {table_name}')


if __name__ == '__main__':
    cli()
