"""
Login and registration against the sharded account table.

Both protocols rely on conditional writes for concurrency control:

- Login authenticates and rotates the account's token in one conditional
  update (``SET Token WHERE PassHash = :hash``), so there is no window
  between checking the password and writing the new token.
- Registration claims the username with a conditional put of the basic info
  item (``attribute_not_exists(User)``). Of two concurrent registrations for
  the same username exactly one wins. E-mail uniqueness is checked
  afterwards against an eventually consistent index, so a simultaneous
  duplicate can slip through.

The remaining shards of a new account are written in batches. Only the items
that the store reports as unprocessed are retried, with a growing delay,
until everything is written or the caller's deadline would be passed. The
basic info item carries a ``Provisioning`` flag until then, so an account
that was left partially written can be recognized. Once it is older than
any invocation can run, registering again with the same username and password
reclaims it; the flag is only cleared by the registration that holds the
current token.
"""

import logging
import time
from enum import IntEnum
from typing import Callable, Iterator, List, NamedTuple, Optional

from .. import domain, validation
from ..exceptions import ConditionFailed, PartialWriteError, StoreError, \
    ValidationError
from ..services.kvstore import EMAIL_INDEX, Item, PARTITION_KEY, SORT_KEY, \
    all_of, any_of, equals, greater_than, less_than, not_equals, not_exists
from . import schema
from .passwords import hash_password

logger = logging.getLogger(__name__)

INITIAL_RETRY_DELAY = 0.1
INITIAL_RETRY_INCREMENT = 0.2
MAX_RETRY_INCREMENT = 0.4
RETRY_INCREMENT_DECAY = 1.5
EMAIL_QUERY_LIMIT = 2
RECLAIM_AFTER = 15 * 60
"""Seconds after which a registration that never finished can be redone."""


class LoginResult(IntEnum):
    BadRequest = 0
    InvalidCredentials = 1
    Success = 2
    DatabaseError = 3


class RegisterResult(IntEnum):
    Error = 0
    InvalidUsername = 1
    InvalidDispName = 2
    InvalidEmail = 3
    UsernameTaken = 4
    EmailExists = 5
    BadPassHash = 6
    Success = 7


class Login(NamedTuple):
    """Outcome of a login attempt."""

    result: LoginResult
    account: Optional[domain.Account] = None


class Registration(NamedTuple):
    """Outcome of a registration attempt."""

    result: RegisterResult
    account: Optional[domain.Account] = None
    rolled_back: Optional[bool] = None
    """
    Whether the basic info item was removed after a failed registration.

    ``None`` if no rollback was attempted.
    """


def backoff_delays() -> Iterator[float]:
    """
    Generate the delays (in seconds) between batch write retries.

    The delay grows by half of an increment that itself shrinks each round,
    so the delay levels off instead of growing without bound.
    """
    delay = INITIAL_RETRY_DELAY
    increment = INITIAL_RETRY_INCREMENT
    while True:
        yield delay
        delay += min(increment / 2, MAX_RETRY_INCREMENT)
        increment /= RETRY_INCREMENT_DECAY


class AccountStore(object):
    """
    Account persistence on top of a key-value store.

    Parameters
    ----------
    kvstore : :class:`.DynamoDBStore`
        Or anything that provides the same operations.
    salt : bytes
        Server-side password salt.
    sleep : callable
        Used to wait between batch write retries.
    clock : callable
        Monotonic clock that deadlines are measured against.
    now : callable
        Wall clock (seconds since the epoch) for provisioning timestamps.

    """

    def __init__(self, kvstore, salt: bytes,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic,
                 now: Callable[[], float] = time.time) -> None:
        self.kvstore = kvstore
        self.salt = salt
        self._sleep = sleep
        self._clock = clock
        self._now = now

    def login(self, username: str, pass_hash: str, token_id: str) -> Login:
        """
        Authenticate a user, rotate their token, and load their account.

        Parameters
        ----------
        username : str
        pass_hash : str
            The base64 password hash sent by the client.
        token_id : str
            The id of the token that will be issued for this session. It
            replaces the account's current token id, which revokes any token
            issued before.

        Returns
        -------
        :class:`Login`

        """
        if not validation.is_valid_username(username) \
                or not validation.is_valid_pass_hash(pass_hash) \
                or not token_id:
            return Login(LoginResult.BadRequest)
        user = username.lower()
        try:
            stored_hash = hash_password(pass_hash, self.salt)
        except ValidationError:
            return Login(LoginResult.BadRequest)

        try:
            attributes = self.kvstore.update(
                user, schema.BASIC_INFO,
                set_attributes={schema.TOKEN: token_id},
                condition=equals(schema.PASS_HASH, stored_hash),
                return_values='ALL_NEW'
            )
        except ConditionFailed:
            # Also raised when the account does not exist.
            return Login(LoginResult.InvalidCredentials)
        except StoreError as e:
            logger.error('Login: token update failed for %s: %s', user, e)
            return Login(LoginResult.DatabaseError)

        if attributes.get(schema.PASS_HASH) != stored_hash:
            return Login(LoginResult.InvalidCredentials)
        if attributes.get(schema.PROVISIONING):
            logger.error('Login: account %s was never fully written', user)
            return Login(LoginResult.DatabaseError)
        info = schema.deserialize_basic_info(attributes)
        if info is None:
            logger.error('Login: basic info of %s could not be read', user)
            return Login(LoginResult.DatabaseError)

        try:
            items = self.kvstore.query(
                user, sort_key=greater_than(SORT_KEY, schema.BASIC_INFO),
                consistent=True
            )
        except StoreError as e:
            logger.error('Login: could not query the account of %s: %s',
                         user, e)
            return Login(LoginResult.DatabaseError)

        account = schema.assemble_account(info, items)
        if not account.cards:
            logger.error('Login: card list of %s could not be loaded', user)
            return Login(LoginResult.DatabaseError)
        logger.debug('Login: %s logged in', user)
        return Login(LoginResult.Success, account)

    def register(self, username: str, pass_hash: str, display_name: str,
                 email: str, token_id: str, template: domain.Account,
                 deadline: Optional[float] = None) -> Registration:
        """
        Create a new account seeded from a template.

        Parameters
        ----------
        username : str
        pass_hash : str
            The base64 password hash sent by the client.
        display_name : str
        email : str
        token_id : str
            Id of the token that will be issued for the new account.
        template : :class:`.domain.Account`
            The default account; its cards, decks, achievements, coins and
            verified flag are copied into the new account.
        deadline : float
            Optional value of the store's clock after which batch writes are
            no longer retried.

        Returns
        -------
        :class:`Registration`

        """
        result = self._check_registration(username, pass_hash, display_name,
                                          email)
        if result is not None:
            return Registration(result)
        if not token_id:
            return Registration(RegisterResult.Error)
        user = username.lower()
        try:
            stored_hash = hash_password(pass_hash, self.salt)
        except ValidationError:
            return Registration(RegisterResult.BadPassHash)

        defaults = template.info
        info = domain.BasicInfo(
            username=user,
            email=email,
            display_name=display_name,
            coins=defaults.coins if defaults else 0,
            verified=defaults.verified if defaults else False,
            token_id=token_id
        )
        account = domain.Account(info=info, cards=template.cards,
                                 decks=template.decks,
                                 achievements=template.achievements)

        started = int(self._now())
        item = schema.serialize_basic_info(info, stored_hash, token_id,
                                           provisioning=True)
        item[schema.PROVISION_STARTED] = started
        try:
            self.kvstore.put(item, condition=any_of(
                not_exists(PARTITION_KEY),
                all_of(equals(schema.PROVISIONING, True),
                       equals(schema.PASS_HASH, stored_hash),
                       less_than(schema.PROVISION_STARTED,
                                 started - RECLAIM_AFTER))
            ))
        except ConditionFailed:
            return Registration(RegisterResult.UsernameTaken)
        except StoreError as e:
            logger.error('Register: could not write basic info of %s: %s',
                         user, e)
            return Registration(RegisterResult.Error)

        try:
            duplicates = self.kvstore.query_index(
                EMAIL_INDEX, schema.EMAIL, email.lower(),
                filter=not_equals(PARTITION_KEY, user),
                limit=EMAIL_QUERY_LIMIT
            )
        except StoreError as e:
            logger.error('Register: e-mail lookup failed for %s: %s', user, e)
            return Registration(RegisterResult.Error,
                                rolled_back=self._roll_back(user))
        if duplicates:
            logger.info('Register: e-mail of %s is already in use', user)
            return Registration(RegisterResult.EmailExists,
                                rolled_back=self._roll_back(user))

        try:
            self._write_all(user, schema.serialize_shards(account, user),
                            deadline)
            self.kvstore.update(user, schema.BASIC_INFO,
                                remove_attributes=[
                                    schema.PROVISIONING,
                                    schema.PROVISION_STARTED
                                ],
                                condition=equals(schema.TOKEN, token_id))
        except PartialWriteError as e:
            logger.error('Register: account %s left partially written: %s',
                         user, e)
            return Registration(RegisterResult.Error)
        except StoreError as e:
            logger.error('Register: could not write the account of %s: %s',
                         user, e)
            return Registration(RegisterResult.Error)
        logger.info('Register: created account %s', user)
        return Registration(RegisterResult.Success, account)

    def revoke_token(self, username: str, token_id: str) -> bool:
        """
        Remove the account's token, if it is still ``token_id``.

        Returns
        -------
        bool
            ``False`` if the account holds a different token or none at all,
            which leaves a newer token in place.

        Raises
        ------
        :class:`.StoreError`

        """
        try:
            self.kvstore.update(username.lower(), schema.BASIC_INFO,
                                remove_attributes=[schema.TOKEN],
                                condition=equals(schema.TOKEN, token_id))
        except ConditionFailed:
            return False
        return True

    def current_token_id(self, username: str) -> Optional[str]:
        """
        Get the id of the account's current token.

        Raises
        ------
        :class:`.StoreError`

        """
        item = self.kvstore.get(username.lower(), schema.BASIC_INFO,
                                consistent=True, attributes=[schema.TOKEN])
        if not item:
            return None
        token_id = item.get(schema.TOKEN)
        return token_id if isinstance(token_id, str) else None

    def _check_registration(self, username: str, pass_hash: str,
                            display_name: str, email: str) \
            -> Optional[RegisterResult]:
        if not validation.is_valid_username(username):
            return RegisterResult.InvalidUsername
        if not validation.is_valid_pass_hash(pass_hash):
            return RegisterResult.BadPassHash
        if not validation.is_valid_display_name(display_name):
            return RegisterResult.InvalidDispName
        if not validation.is_valid_email(email):
            return RegisterResult.InvalidEmail
        return None

    def _roll_back(self, user: str) -> bool:
        """Delete the basic info item of a registration that failed."""
        try:
            self.kvstore.delete(user, schema.BASIC_INFO)
        except StoreError as e:
            logger.error('Register: rollback of %s failed: %s', user, e)
            return False
        return True

    def _write_all(self, user: str, items: List[Item],
                   deadline: Optional[float]) -> None:
        """
        Batch write ``items``, retrying only the unprocessed ones.

        Raises
        ------
        :class:`.PartialWriteError`
            If the next retry would start after ``deadline``.
        :class:`.StoreError`

        """
        pending = items
        delays = backoff_delays()
        while pending:
            pending = self.kvstore.batch_put(pending)
            if not pending:
                return
            delay = next(delays)
            if deadline is not None and self._clock() + delay > deadline:
                raise PartialWriteError(f'{len(pending)} items of {user} were'
                                        f' not written before the deadline')
            logger.warning('Register: %i items of %s unprocessed, retrying'
                           ' in %.3fs', len(pending), user, delay)
            self._sleep(delay)
