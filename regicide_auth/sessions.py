"""
User-facing session operations.

:class:`SessionServices` combines token handling with the account store:
login and registration issue a new token, logout revokes the presented one,
and verify checks that a token is both authentic and still the account's
current token.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from pytz import UTC

from . import domain, validation
from .accounts.store import AccountStore, LoginResult, RegisterResult
from .auth import tokens
from .exceptions import ConfigurationError, EncodingError, FormatError, \
    StoreError
from .payloads import LoginRequest, LoginResponse, LogoutRequest, \
    LogoutResponse, LogoutResult, RegisterRequest, RegisterResponse, \
    VerifyRequest, VerifyResponse

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME = timedelta(days=365)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class SessionServices(object):
    """
    Login, registration, logout and verification.

    Parameters
    ----------
    accounts : :class:`.AccountStore`
    signing_key : bytes
        Key used to sign and verify tokens.
    default_account : :class:`.domain.Account`
        Template that new accounts are seeded from; required for
        registration.
    token_lifetime : :class:`datetime.timedelta`
    now : callable
        Returns the current (aware) time.

    """

    def __init__(self, accounts: AccountStore, signing_key: bytes,
                 default_account: Optional[domain.Account] = None,
                 token_lifetime: timedelta = DEFAULT_TOKEN_LIFETIME,
                 now: Callable[[], datetime] = _utcnow) -> None:
        self.accounts = accounts
        self.signing_key = signing_key
        self.default_account = default_account
        self.token_lifetime = token_lifetime
        self._now = now

    def mint(self, username: str) -> domain.AuthToken:
        """Create a new (unsigned) token for an account."""
        issued = self._now()
        return domain.AuthToken(user_id=username.lower(), issued=issued,
                                expiration=issued + self.token_lifetime,
                                token_id=tokens.generate_token_id())

    def login(self, request: LoginRequest) -> LoginResponse:
        """Log in, revoking any token previously issued to the account."""
        if not request.username or not request.pass_hash:
            return LoginResponse(result=LoginResult.BadRequest)
        token = self.mint(request.username)
        try:
            encoded = tokens.build(token, self.signing_key)
        except EncodingError as e:
            logger.error('Could not build a token for %s: %s',
                         token.user_id, e)
            return LoginResponse(result=LoginResult.DatabaseError)

        login = self.accounts.login(request.username, request.pass_hash,
                                    token.token_id)
        if login.result is not LoginResult.Success:
            return LoginResponse(result=login.result)
        return LoginResponse(result=LoginResult.Success,
                             account=login.account, auth_token=encoded)

    def register(self, request: RegisterRequest,
                 deadline: Optional[float] = None) -> RegisterResponse:
        """
        Create an account and log it in.

        Parameters
        ----------
        request : :class:`.RegisterRequest`
        deadline : float
            Passed to :meth:`.AccountStore.register`.

        """
        if self.default_account is None:
            raise ConfigurationError('No default account to register with')
        if not request.username:
            return RegisterResponse(result=RegisterResult.InvalidUsername)
        token = self.mint(request.username)
        try:
            encoded = tokens.build(token, self.signing_key)
        except EncodingError as e:
            logger.error('Could not build a token for %s: %s',
                         token.user_id, e)
            return RegisterResponse(result=RegisterResult.Error)

        registration = self.accounts.register(
            request.username, request.pass_hash, request.display_name,
            request.email, token.token_id, self.default_account,
            deadline=deadline
        )
        if registration.result is not RegisterResult.Success:
            if registration.rolled_back is False:
                logger.warning('Registration of %s failed and left a stale'
                               ' basic info item', token.user_id)
            return RegisterResponse(result=registration.result)
        return RegisterResponse(result=RegisterResult.Success,
                                account=registration.account, token=encoded)

    def logout(self, request: LogoutRequest) -> LogoutResponse:
        """
        Revoke the presented token.

        The token is expected to have passed the authorizer already, so its
        signature is not checked again. A token that is no longer current
        counts as logged out, and a newer token is left in place.
        """
        if request.auth_token is None:
            return LogoutResponse(result=LogoutResult.Error)
        if not request.auth_token.strip():
            return LogoutResponse(result=LogoutResult.InvalidToken)
        try:
            token = tokens.parse(request.auth_token)
        except FormatError as e:
            logger.debug('Logout with an unreadable token: %s', e)
            return LogoutResponse(result=LogoutResult.InvalidToken)
        if not validation.username_length_ok(token.user_id):
            return LogoutResponse(result=LogoutResult.InvalidToken)
        try:
            revoked = self.accounts.revoke_token(token.user_id,
                                                 token.token_id)
        except StoreError as e:
            logger.error('Logout of %s failed: %s', token.user_id, e)
            return LogoutResponse(result=LogoutResult.Error)
        if not revoked:
            logger.debug('Token of %s was already revoked', token.user_id)
        return LogoutResponse(result=LogoutResult.Success)

    def verify(self, request: VerifyRequest) -> VerifyResponse:
        """Check that a token is authentic and is the account's current one."""
        token_string = request.auth_token
        if not token_string or not token_string.strip():
            return VerifyResponse(result=False)
        if not tokens.verify_signature(token_string, self.signing_key):
            return VerifyResponse(result=False)
        try:
            token = tokens.parse(token_string)
        except FormatError:
            return VerifyResponse(result=False)
        if not validation.username_length_ok(token.user_id):
            return VerifyResponse(result=False)
        try:
            current = self.accounts.current_token_id(token.user_id)
        except StoreError as e:
            logger.error('Could not read the token of %s: %s',
                         token.user_id, e)
            return VerifyResponse(result=False)
        return VerifyResponse(result=current is not None
                              and current == token.token_id)
