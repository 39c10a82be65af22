"""
Request and response payloads of the session functions.

Field names are the wire contract. Result codes are emitted as their names.
"""

from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .accounts.store import LoginResult, RegisterResult
from .domain import Account, to_dict


class LogoutResult(IntEnum):
    Error = 0
    InvalidToken = 1
    Success = 2


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(_Payload):
    username: Optional[str] = Field(default=None, alias='Username')
    pass_hash: Optional[str] = Field(default=None, alias='PassHash')


class LoginResponse(_Payload):
    result: LoginResult = Field(alias='Result')
    account: Optional[Account] = Field(default=None, alias='Account')
    auth_token: str = Field(default='', alias='AuthToken')

    @field_serializer('result')
    def _result_name(self, result: LoginResult) -> str:
        return result.name


class RegisterRequest(_Payload):
    username: Optional[str] = Field(default=None, alias='Username')
    pass_hash: Optional[str] = Field(default=None, alias='PassHash')
    display_name: Optional[str] = Field(default=None, alias='DispName')
    email: Optional[str] = Field(default=None, alias='Email')


class RegisterResponse(_Payload):
    result: RegisterResult = Field(alias='Result')
    account: Optional[Account] = Field(default=None, alias='Account')
    token: str = Field(default='', alias='Token')

    @field_serializer('result')
    def _result_name(self, result: RegisterResult) -> str:
        return result.name


class LogoutRequest(_Payload):
    auth_token: Optional[str] = Field(default=None, alias='AuthToken')


class LogoutResponse(_Payload):
    result: LogoutResult = Field(alias='Result')

    @field_serializer('result')
    def _result_name(self, result: LogoutResult) -> str:
        return result.name


class VerifyRequest(_Payload):
    auth_token: Optional[str] = Field(default=None, alias='AuthToken')


class VerifyResponse(_Payload):
    result: bool = Field(default=False, alias='Result')


def to_wire(payload: BaseModel) -> dict:
    """Generate the JSON-ready representation of a response."""
    return to_dict(payload)
