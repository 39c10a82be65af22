"""Tests for :mod:`regicide_auth.accounts.passwords`."""

import hashlib
from base64 import b64decode, b64encode
from unittest import TestCase

from hypothesis import given
from hypothesis import strategies as st

from regicide_auth.accounts import passwords
from regicide_auth.exceptions import ConfigurationError, ValidationError

SALT = b's' * 32


class TestHashPassword(TestCase):
    """The client's hash is hashed again with the server salt."""

    def test_known_value(self):
        client_hash = b64encode(b'client side hash').decode('ascii')
        expected = b64encode(
            hashlib.sha256(b'client side hash' + SALT).digest()
        ).decode('ascii')
        self.assertEqual(passwords.hash_password(client_hash, SALT), expected)

    @given(st.binary(min_size=30, max_size=64))
    def test_deterministic(self, raw):
        client_hash = b64encode(raw).decode('ascii')
        hashed = passwords.hash_password(client_hash, SALT)
        self.assertEqual(hashed, passwords.hash_password(client_hash, SALT))
        self.assertNotEqual(hashed, client_hash)
        self.assertEqual(len(b64decode(hashed)), 32)

    def test_salt_matters(self):
        client_hash = b64encode(b'client side hash').decode('ascii')
        self.assertNotEqual(passwords.hash_password(client_hash, SALT),
                            passwords.hash_password(client_hash, b't' * 32))

    def test_short_salt(self):
        with self.assertRaises(ConfigurationError):
            passwords.hash_password('aGFzaA==', b's' * 31)
        with self.assertRaises(ConfigurationError):
            passwords.hash_password('aGFzaA==', None)

    def test_bad_input(self):
        for bad in ['', 'not base64!', 'aGFzaA=', 'ä' * 8]:
            with self.assertRaises(ValidationError):
                passwords.hash_password(bad, SALT)
