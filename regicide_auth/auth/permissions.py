"""
Permission flags granted to authorized requests.

The authorizer passes a ``|``-delimited list of flags to the gateway, which
forwards it to the downstream functions in the request context. Rather than
refer to flags by writing new str objects, these constants should be
imported and used.
"""

from typing import Iterable

from .. import domain

GENERAL_USER = 'g'
"""Every authenticated player has general user permissions."""

SEPARATOR = '|'


def join(flags: Iterable[str]) -> str:
    """Build the permission string passed to the gateway."""
    return SEPARATOR.join(flags)


def for_token(token: domain.AuthToken) -> str:
    """Get the permission string for the holder of a token."""
    return join([GENERAL_USER])
