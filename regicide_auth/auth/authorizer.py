"""Allow/deny decisions for requests passing through the gateway."""

import logging
from typing import NamedTuple, Optional

from . import permissions, tokens
from .. import validation
from ..exceptions import FormatError

logger = logging.getLogger(__name__)

ANONYMOUS = 'User'
"""Principal and user reported for denied requests."""

AUTHORIZED_PRINCIPAL = 'API'
POLICY_VERSION = '2012-10-17'
INVOKE_ACTION = 'execute-api:Invoke'
USAGE_IDENTIFIER_KEY = 'Public'


class Decision(NamedTuple):
    """The outcome of authorizing one request."""

    allow: bool
    user_id: str = ANONYMOUS
    permissions: str = ''


DENY = Decision(allow=False)


def authorize(token: Optional[str], key: bytes) -> Decision:
    """
    Decide whether a request carrying ``token`` may proceed.

    The token must be well formed, correctly signed, and carry a user id that
    could be a valid username. Whether the token is still the account's
    current token is not checked here.

    Parameters
    ----------
    token : str or None
    key : bytes
        The signing key.

    Returns
    -------
    :class:`Decision`

    """
    if not token or not token.strip():
        logger.debug('No authorization token')
        return DENY
    if not tokens.verify_signature(token, key):
        logger.debug('Token failed signature verification')
        return DENY
    try:
        auth_token = tokens.parse(token)
    except FormatError as e:
        logger.debug('Signed token could not be read: %s', e)
        return DENY
    if not validation.username_length_ok(auth_token.user_id):
        logger.warning('Signed token carries an impossible user id')
        return DENY
    return Decision(allow=True, user_id=auth_token.user_id,
                    permissions=permissions.for_token(auth_token))


def build_policy(decision: Decision, method_arn: str) -> dict:
    """Build the gateway authorizer response for a decision."""
    return {
        'principalId': AUTHORIZED_PRINCIPAL if decision.allow else ANONYMOUS,
        'policyDocument': {
            'Version': POLICY_VERSION,
            'Statement': [{
                'Action': INVOKE_ACTION,
                'Effect': 'Allow' if decision.allow else 'Deny',
                'Resource': method_arn
            }]
        },
        'context': {
            'User': decision.user_id,
            'Path': method_arn,
            'Permissions': decision.permissions
        },
        'usageIdentifierKey': USAGE_IDENTIFIER_KEY
    }
