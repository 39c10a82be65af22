"""Server-side re-hashing of client password hashes."""

import hashlib
from base64 import b64encode, b64decode

from ..exceptions import ConfigurationError, ValidationError

MIN_SALT_LENGTH = 32


def _hash_salt_and_password(salt: bytes, password: bytes) -> bytes:
    return hashlib.sha256(password + salt).digest()


def hash_password(pass_hash: str, salt: bytes) -> str:
    """
    Re-hash the pre-hashed password sent by a client.

    This is the value compared and stored, so the hash sent by the client is
    never persisted.

    Parameters
    ----------
    pass_hash : str
        Base64-encoded hash computed by the client.
    salt : bytes
        Server-side salt, at least :const:`MIN_SALT_LENGTH` bytes.

    Returns
    -------
    str
        Base64-encoded SHA-256 of the decoded client hash followed by the
        salt.

    """
    if salt is None or len(salt) < MIN_SALT_LENGTH:
        raise ConfigurationError('Password salt is missing or too short')
    if not pass_hash:
        raise ValidationError('Password hash is empty')
    try:
        password = b64decode(pass_hash, validate=True)
    except ValueError as e:     # binascii.Error, or non-ascii input.
        raise ValidationError('Password hash is not valid base64') from e
    return b64encode(_hash_salt_and_password(salt, password)).decode('ascii')
