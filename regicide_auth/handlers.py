"""
Function entry points.

Each handler takes the invocation ``event`` (the decoded request payload)
and ``context``, and returns a JSON-ready dict. Services are built once per
process and reused across invocations.
"""

import logging
import time
from datetime import timedelta
from functools import lru_cache
from typing import Any, Optional

from pydantic import ValidationError as ModelValidationError

from . import config
from .accounts.store import AccountStore, LoginResult, RegisterResult
from .app_logging import setup_logger
from .auth import authorizer
from .payloads import LoginRequest, LoginResponse, LogoutRequest, \
    LogoutResponse, LogoutResult, RegisterRequest, RegisterResponse, \
    VerifyRequest, VerifyResponse, to_wire
from .services.kvstore import DynamoDBStore
from .sessions import SessionServices

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def create_services(require_salt: bool = True,
                    load_template: bool = False) -> SessionServices:
    """
    Build the session services for this process.

    Parameters
    ----------
    require_salt : bool
        Login and registration hash passwords; logout and verify do not.
    load_template : bool
        Load the default account; only registration needs it.

    """
    setup_logger(config.LOG_LEVEL)
    settings = config.load_config(require_salt=require_salt)
    kvstore = DynamoDBStore(settings.table, region_name=config.AWS_REGION,
                            endpoint_url=config.DYNAMODB_ENDPOINT)
    template = config.load_default_account() if load_template else None
    return SessionServices(
        AccountStore(kvstore, settings.salt),
        settings.signing_key,
        template,
        token_lifetime=timedelta(days=config.TOKEN_LIFETIME_DAYS)
    )


@lru_cache(maxsize=1)
def signing_key() -> bytes:
    """Load the key that the authorizer verifies tokens with."""
    setup_logger(config.LOG_LEVEL)
    return config.load_config(require_salt=False).signing_key


def deadline_for(context: Any) -> Optional[float]:
    """Get the monotonic time by which retries must stop, if known."""
    remaining = getattr(context, 'get_remaining_time_in_millis', None)
    if remaining is None:
        return None
    return time.monotonic() \
        + max(remaining() - config.DEADLINE_MARGIN_MS, 0) / 1000


def login_handler(event: dict, context: Any = None) -> dict:
    try:
        request = LoginRequest.model_validate(event or {})
    except ModelValidationError:
        return to_wire(LoginResponse(result=LoginResult.BadRequest))
    return to_wire(create_services().login(request))


def register_handler(event: dict, context: Any = None) -> dict:
    try:
        request = RegisterRequest.model_validate(event or {})
    except ModelValidationError:
        return to_wire(RegisterResponse(result=RegisterResult.Error))
    services = create_services(load_template=True)
    return to_wire(services.register(request, deadline=deadline_for(context)))


def logout_handler(event: dict, context: Any = None) -> dict:
    try:
        request = LogoutRequest.model_validate(event or {})
    except ModelValidationError:
        return to_wire(LogoutResponse(result=LogoutResult.InvalidToken))
    return to_wire(create_services(require_salt=False).logout(request))


def verify_handler(event: dict, context: Any = None) -> dict:
    try:
        request = VerifyRequest.model_validate(event or {})
    except ModelValidationError:
        return to_wire(VerifyResponse(result=False))
    return to_wire(create_services(require_salt=False).verify(request))


def authorizer_handler(event: dict, context: Any = None) -> dict:
    """Gateway authorizer; accepts camelCase and PascalCase field names."""
    event = event or {}
    token = event.get('authorizationToken', event.get('AuthorizationToken'))
    method_arn = event.get('methodArn', event.get('MethodArn')) or ''
    if not isinstance(token, str):
        token = None
    decision = authorizer.authorize(token, signing_key())
    if not decision.allow:
        logger.info('Denied access to %s', method_arn)
    return authorizer.build_policy(decision, method_arn)
