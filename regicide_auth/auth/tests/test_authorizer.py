"""Tests for :mod:`regicide_auth.auth.authorizer`."""

from datetime import datetime, timedelta
from unittest import TestCase

from pytz import UTC

from regicide_auth import domain
from regicide_auth.auth import authorizer, permissions, tokens

KEY = b'k' * 64
ARN = 'arn:aws:execute-api:us-east-1:123456789012:abc/prod/GET/account'


def signed(user_id: str = 'someplayer', key: bytes = KEY) -> str:
    issued = datetime.now(tz=UTC)
    return tokens.build(domain.AuthToken(
        user_id=user_id, issued=issued,
        expiration=issued + timedelta(days=1),
        token_id=tokens.generate_token_id()
    ), key)


class TestAuthorize(TestCase):
    """Only well-formed, correctly signed tokens are allowed."""

    def test_valid_token(self):
        decision = authorizer.authorize(signed(), KEY)
        self.assertTrue(decision.allow)
        self.assertEqual(decision.user_id, 'someplayer')
        self.assertEqual(decision.permissions, permissions.GENERAL_USER)

    def test_missing_token(self):
        for token in (None, '', '   '):
            self.assertEqual(authorizer.authorize(token, KEY),
                             authorizer.DENY)

    def test_wrong_key(self):
        decision = authorizer.authorize(signed(key=b'x' * 64), KEY)
        self.assertFalse(decision.allow)
        self.assertEqual(decision.user_id, authorizer.ANONYMOUS)

    def test_tampered(self):
        token = signed()
        info, user, signature = token.split('.')
        other = signed('otherplayer').split('.')[1]
        self.assertFalse(
            authorizer.authorize(f'{info}.{other}.{signature}', KEY).allow
        )

    def test_impossible_user_id(self):
        """A signed token whose user id is too short or long is denied."""
        self.assertFalse(authorizer.authorize(signed('abc'), KEY).allow)
        self.assertFalse(authorizer.authorize(signed('a' * 33), KEY).allow)

    def test_garbage(self):
        self.assertFalse(authorizer.authorize('not-a-token', KEY).allow)


class TestBuildPolicy(TestCase):
    """The gateway receives an IAM policy and a context."""

    def test_allow(self):
        decision = authorizer.Decision(allow=True, user_id='someplayer',
                                       permissions='g')
        policy = authorizer.build_policy(decision, ARN)
        self.assertEqual(policy['principalId'], 'API')
        statement = policy['policyDocument']['Statement'][0]
        self.assertEqual(statement['Effect'], 'Allow')
        self.assertEqual(statement['Action'], 'execute-api:Invoke')
        self.assertEqual(statement['Resource'], ARN)
        self.assertEqual(policy['policyDocument']['Version'], '2012-10-17')
        self.assertEqual(policy['context'], {'User': 'someplayer',
                                             'Path': ARN,
                                             'Permissions': 'g'})
        self.assertEqual(policy['usageIdentifierKey'], 'Public')

    def test_deny(self):
        policy = authorizer.build_policy(authorizer.DENY, ARN)
        self.assertEqual(policy['principalId'], 'User')
        self.assertEqual(
            policy['policyDocument']['Statement'][0]['Effect'], 'Deny'
        )
        self.assertEqual(policy['context']['User'], 'User')
        self.assertEqual(policy['context']['Permissions'], '')


class TestPermissions(TestCase):
    def test_join(self):
        self.assertEqual(permissions.join(['g', 'a']), 'g|a')
        self.assertEqual(permissions.join([]), '')
