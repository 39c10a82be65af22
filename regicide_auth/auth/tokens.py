"""
Functions for building and reading signed session tokens.

A token is three unpadded base64url chunks joined by ``.``::

    <token info>.<user info>.<signature>

The token info chunk is the JSON object ``{"expr": ..., "issued": ...}``
(both in ticks, i.e. 100ns intervals since 0001-01-01 UTC) and the user info
chunk is ``{"acc_id": ..., "token_id": ...}``. The signature is an
HMAC-SHA256 over the decoded token info bytes followed by the decoded user
info bytes.

Only the ``token_id`` is stored with the account, so issuing a new token at
login revokes the previous one. Expiry is enforced when a token is built but
not when it is read or verified: a token remains usable until it is rotated
out or removed at logout.
"""

import json
import re
import secrets
from datetime import datetime, timedelta
from typing import Tuple

from jwt.algorithms import HMACAlgorithm
from jwt.utils import base64url_decode, base64url_encode
from pytz import UTC

from .. import domain
from ..exceptions import EncodingError, FormatError

MIN_KEY_LENGTH = 64
"""Signing keys must be at least this many bytes."""

TOKEN_ID_ALPHABET = \
    'qwertyuiopasdfghjklzxcvbnmQWERTYUIOPASDFGHJKLZXCVBNM1234567890'
TOKEN_ID_BYTES = 16

TOKEN_PATTERN = re.compile(r'^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$')

TICKS_EPOCH = datetime(1, 1, 1, tzinfo=UTC)
TICKS_PER_MICROSECOND = 10

_hmac = HMACAlgorithm(HMACAlgorithm.SHA256)


def to_ticks(moment: datetime) -> int:
    """Convert a :class:`datetime` to ticks; naive values are taken as UTC."""
    if moment.tzinfo is None:
        moment = UTC.localize(moment)
    delta = moment - TICKS_EPOCH
    return (delta // timedelta(microseconds=1)) * TICKS_PER_MICROSECOND


def from_ticks(ticks: int) -> datetime:
    """Get a UTC :class:`datetime` from a tick count."""
    return TICKS_EPOCH + timedelta(microseconds=ticks // TICKS_PER_MICROSECOND)


def build(token: domain.AuthToken, key: bytes) -> str:
    """
    Encode and sign an :class:`.AuthToken`.

    Parameters
    ----------
    token : :class:`.AuthToken`
    key : bytes
        HMAC signing key, at least :const:`MIN_KEY_LENGTH` bytes.

    Returns
    -------
    str

    Raises
    ------
    :class:`.EncodingError`
        Raised if the key is too short, or if the token has already expired.

    """
    if key is None or len(key) < MIN_KEY_LENGTH:
        raise EncodingError(f'Signing key must be at least {MIN_KEY_LENGTH}'
                            ' bytes')
    expires = to_ticks(token.expiration)
    if expires <= to_ticks(datetime.now(tz=UTC)):
        raise EncodingError('Token has already expired')
    if expires <= to_ticks(token.issued):
        raise EncodingError('Token expires before it was issued')

    info_chunk = _dumps({'expr': expires,
                         'issued': to_ticks(token.issued)})
    user_chunk = _dumps({'acc_id': token.user_id,
                         'token_id': token.token_id})
    signature = _hmac.sign(info_chunk + user_chunk, key)
    return b'.'.join([base64url_encode(info_chunk),
                      base64url_encode(user_chunk),
                      base64url_encode(signature)]).decode('ascii')


def parse(token: str) -> domain.AuthToken:
    """
    Read the contents of a token.

    The signature is **not** checked; use :func:`verify_signature` first if
    the token needs to be authentic.

    Raises
    ------
    :class:`.FormatError`
        Raised if the token is not well formed.

    """
    info_chunk, user_chunk, _ = _split(token)
    try:
        info = json.loads(info_chunk)
        user = json.loads(user_chunk)
        expr, issued = info['expr'], info['issued']
        user_id, token_id = user['acc_id'], user['token_id']
    except (ValueError, TypeError, KeyError) as e:
        raise FormatError('Token payload malformed') from e
    if not _is_int(expr) or not _is_int(issued) \
            or not isinstance(user_id, str) or not isinstance(token_id, str):
        raise FormatError('Token payload malformed')
    try:
        return domain.AuthToken(user_id=user_id, token_id=token_id,
                                issued=from_ticks(issued),
                                expiration=from_ticks(expr))
    except OverflowError as e:
        raise FormatError('Token timestamps out of range') from e


def verify_signature(token: str, key: bytes) -> bool:
    """Check the format and the signature of a token; never raises."""
    if not key or len(key) < MIN_KEY_LENGTH:
        return False
    try:
        info_chunk, user_chunk, signature = _split(token)
    except FormatError:
        return False
    return _hmac.verify(info_chunk + user_chunk, key, signature)


def generate_token_id() -> str:
    """Generate a random identifier for a new token."""
    return ''.join(TOKEN_ID_ALPHABET[b % len(TOKEN_ID_ALPHABET)]
                   for b in secrets.token_bytes(TOKEN_ID_BYTES))


def _dumps(data: dict) -> bytes:
    return json.dumps(data, separators=(',', ':')).encode('utf-8')


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _split(token: str) -> Tuple[bytes, bytes, bytes]:
    if not isinstance(token, str) or not TOKEN_PATTERN.match(token):
        raise FormatError('Not a valid token')
    info, user, signature = token.split('.')
    return _decode_chunk(info), _decode_chunk(user), _decode_chunk(signature)


def _decode_chunk(chunk: str) -> bytes:
    try:
        decoded = base64url_decode(chunk)
    except ValueError as e:     # binascii.Error is a ValueError.
        raise FormatError('Token chunk is not valid base64') from e
    # Unused trailing bits must be zero, so each token has one spelling.
    if base64url_encode(decoded).decode('ascii') != chunk:
        raise FormatError('Token chunk is not canonically encoded')
    return decoded
