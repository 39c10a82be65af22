"""Tests for :mod:`regicide_auth.cli`."""

from unittest import TestCase, mock

from click.testing import CliRunner

from regicide_auth import cli, config
from regicide_auth.auth import tokens
from regicide_auth.exceptions import ConfigurationError, StoreError

SETTINGS = config.Config('accounts', b'k' * 64)


@mock.patch.object(cli, 'setup_logger', mock.MagicMock())
class TestGenerateToken(TestCase):
    @mock.patch.object(cli.config, 'load_config', return_value=SETTINGS)
    def test_generate(self, mock_load):
        runner = CliRunner()
        result = runner.invoke(cli.cli, ['generate-token',
                                         '--username', 'SomePlayer',
                                         '--token-id', 'fixed',
                                         '--days', '2'])
        self.assertEqual(result.exit_code, 0, result.output)
        token = result.output.strip().splitlines()[-1]
        self.assertTrue(tokens.verify_signature(token, b'k' * 64))
        parsed = tokens.parse(token)
        self.assertEqual(parsed.user_id, 'someplayer')
        self.assertEqual(parsed.token_id, 'fixed')
        self.assertEqual((parsed.expiration - parsed.issued).days, 2)
        mock_load.assert_called_once_with(require_salt=False)

    @mock.patch.object(cli.config, 'load_config', return_value=SETTINGS)
    def test_prompts(self, mock_load):
        """A random token id is used by default."""
        runner = CliRunner()
        result = runner.invoke(cli.cli, ['generate-token'],
                               input='someplayer\n\n\n')
        self.assertEqual(result.exit_code, 0, result.output)
        token = tokens.parse(result.output.strip().splitlines()[-1])
        self.assertEqual(len(token.token_id), tokens.TOKEN_ID_BYTES)

    @mock.patch.object(cli.config, 'load_config',
                       side_effect=ConfigurationError('No signing key'))
    def test_no_key(self, mock_load):
        runner = CliRunner()
        result = runner.invoke(cli.cli, ['generate-token',
                                         '--username', 'someplayer',
                                         '--token-id', 'fixed',
                                         '--days', '2'])
        self.assertEqual(result.exit_code, 1)
        self.assertIn('No signing key', result.output)

    @mock.patch.object(cli.config, 'load_config', return_value=SETTINGS)
    def test_already_expired(self, mock_load):
        runner = CliRunner()
        result = runner.invoke(cli.cli, ['generate-token',
                                         '--username', 'someplayer',
                                         '--token-id', 'fixed',
                                         '--days=-1'])
        self.assertEqual(result.exit_code, 1)


@mock.patch.object(cli, 'setup_logger', mock.MagicMock())
class TestCreateTable(TestCase):
    @mock.patch.object(cli, 'DynamoDBStore')
    def test_create(self, mock_store):
        runner = CliRunner()
        result = runner.invoke(cli.cli, ['create-table', 'accounts',
                                         '--read-capacity', '2'])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(mock_store.call_args[0], ('accounts',))
        mock_store.return_value.create_table.assert_called_once_with(
            read_capacity=2, write_capacity=5
        )
        self.assertIn('Created accounts', result.output)

    @mock.patch.object(cli, 'DynamoDBStore')
    def test_failure(self, mock_store):
        mock_store.return_value.create_table.side_effect = \
            StoreError('Could not create accounts')
        runner = CliRunner()
        result = runner.invoke(cli.cli, ['create-table', 'accounts'])
        self.assertEqual(result.exit_code, 1)
        self.assertIn('Could not create accounts', result.output)
