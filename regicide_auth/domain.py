"""Defines account and token concepts for the game backend."""

from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

UINT16_MAX = 2 ** 16 - 1
UINT64_MAX = 2 ** 64 - 1
INT32_MIN = -2 ** 31
INT32_MAX = 2 ** 31 - 1


class _Model(BaseModel):
    """Immutable model that (de)serializes using the wire field names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class AuthToken(_Model):
    """A session token issued to an account at login or registration."""

    user_id: str = Field(alias='UserId')
    """Canonical (lowercase) username of the account."""

    issued: datetime = Field(alias='Issued')
    """When the token was minted."""

    expiration: datetime = Field(alias='Expiration')
    """
    When the token stops being mintable.

    This is only checked when the token is built; see
    :func:`regicide_auth.auth.tokens.parse`.
    """

    token_id: str = Field(alias='TokenId')
    """Identifier correlating the token with the account's current token."""


class BasicInfo(_Model):
    """Profile data for an account."""

    username: str = Field(alias='Username')
    """Unique, case-insensitive account name."""

    email: str = Field(alias='Email')
    """Unique, case-insensitive e-mail address."""

    display_name: str = Field(alias='DisplayName')
    """Name shown to other players."""

    coins: int = Field(default=0, ge=0, le=UINT64_MAX, alias='Coins')

    verified: bool = Field(default=False, alias='Verified')
    """Whether or not the e-mail address has been verified."""

    token_id: str = Field(default='', alias='Token', exclude=True)
    """The current token id; never sent back to clients."""


class Card(_Model):
    """A quantity of one card type."""

    id: int = Field(ge=0, le=UINT16_MAX, alias='Id')
    count: int = Field(ge=0, le=UINT16_MAX, alias='Ct')


class Deck(_Model):
    """A named deck of cards."""

    id: int = Field(ge=0, le=UINT16_MAX, alias='Id')
    """Deck slot; valid decks use 1 through 32."""

    name: str = Field(alias='Name')
    cards: List[Card] = Field(default_factory=list, alias='Cards')


class Achievement(_Model):
    """Progress towards one achievement."""

    id: int = Field(ge=0, le=UINT16_MAX, alias='Id')
    complete: bool = Field(default=False, alias='Complete')
    state: int = Field(default=0, ge=INT32_MIN, le=INT32_MAX, alias='State')


class Account(_Model):
    """The full account aggregate."""

    info: Optional[BasicInfo] = Field(default=None, alias='Info')
    cards: List[Card] = Field(default_factory=list, alias='Cards')
    decks: List[Deck] = Field(default_factory=list, alias='Decks')
    achievements: List[Achievement] = Field(default_factory=list,
                                            alias='Achievements')


def to_dict(obj: BaseModel) -> dict:
    """Generate the JSON-ready wire representation of a model.

    Fields are keyed by their wire aliases; datetimes become ISO strings.
    Function responses go through this, via :func:`.payloads.to_wire`.
    """
    return obj.model_dump(mode='json', by_alias=True)
