"""
Mapping between the account aggregate and key-value items.

An account is stored as several items that share the partition key ``User``
(the lowercase username) and differ by the sort key ``Property``:

========== ==============================================================
Property   Contents
========== ==============================================================
0          Basic info: e-mail, display name, password hash, token, coins
1          Cards whose id is at most :const:`MAX_LOWER_CARD_ID`
2          Cards whose id is greater than :const:`MAX_LOWER_CARD_ID`
3          All achievements
4          Reserved
5 - 36     One item per deck, ``Property = deck id + DECK_OFFSET``
========== ==============================================================

Keeping the card set in two range-bounded shards and each deck in its own
item keeps every item under the store's item size ceiling, while
``Property > 4`` still fetches every deck in one query.

All functions here are pure. Serializers drop bad entries with a warning and
carry on; deserializers return ``None`` for an item that cannot be read and
skip bad entries inside an item.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError as ModelValidationError

from .. import domain
from ..services.kvstore import Item, PARTITION_KEY, SORT_KEY, to_int

logger = logging.getLogger(__name__)

BASIC_INFO = 0
CARDS_LOWER = 1
CARDS_UPPER = 2
ACHIEVEMENTS = 3
RESERVED = 4
DECK_OFFSET = 4

MAX_LOWER_CARD_ID = 32767
MIN_DECK_ID = 1
MAX_DECK_ID = 32

# Attribute names.
EMAIL = 'Email'
ORIG_EMAIL = 'OrigEmail'
DISPLAY_NAME = 'DispName'
PASS_HASH = 'PassHash'
TOKEN = 'Token'
COINS = 'Coins'
VERIFIED = 'Verify'
PROVISIONING = 'Provisioning'
PROVISION_STARTED = 'ProvStart'
CARDS = 'Cards'
ACHIEVEMENT_LIST = 'Achv'


def deck_property(deck_id: int) -> int:
    """Sort key of the item holding a deck."""
    return deck_id + DECK_OFFSET


def _key(username: str, prop: int) -> Item:
    return {PARTITION_KEY: username.lower(), SORT_KEY: prop}


def serialize_basic_info(info: domain.BasicInfo, pass_hash: str = '',
                         token_id: str = '', include_coins: bool = True,
                         provisioning: bool = False) -> Item:
    """
    Generate the basic info item for an account.

    The e-mail address is stored twice: ``Email`` is the lowercase copy that
    the e-mail index is built on, and ``OrigEmail`` keeps the address as it
    was entered.

    Parameters
    ----------
    info : :class:`.domain.BasicInfo`
    pass_hash : str
        The server-side password hash; omitted when empty.
    token_id : str
        The current token id; omitted when empty.
    include_coins : bool
    provisioning : bool
        Mark the account as not yet fully written.

    Returns
    -------
    dict

    """
    item = _key(info.username, BASIC_INFO)
    if info.email:
        item[EMAIL] = info.email.lower()
        item[ORIG_EMAIL] = info.email
    if info.display_name:
        item[DISPLAY_NAME] = info.display_name
    if pass_hash:
        item[PASS_HASH] = pass_hash
    if token_id:
        item[TOKEN] = token_id
    if include_coins:
        item[COINS] = info.coins
    item[VERIFIED] = info.verified
    if provisioning:
        item[PROVISIONING] = True
    return item


def serialize_cards(cards: Iterable[domain.Card], username: str) \
        -> Tuple[Optional[Item], Optional[Item]]:
    """
    Split a card list into the lower and upper card shards.

    Returns
    -------
    tuple
        ``(lower, upper)``; either is ``None`` if no card falls in its range.

    """
    user = username.lower()
    lower: Optional[Item] = None
    upper: Optional[Item] = None
    for card in cards:
        if card.id > MAX_LOWER_CARD_ID:
            if upper is None:
                upper = {**_key(user, CARDS_UPPER), CARDS: {}}
            shard = upper
        else:
            if lower is None:
                lower = {**_key(user, CARDS_LOWER), CARDS: {}}
            shard = lower
        if str(card.id) in shard[CARDS]:
            logger.warning('Duplicate card %i in the card list of %s',
                           card.id, user)
            continue
        shard[CARDS][str(card.id)] = card.count
    return lower, upper


def serialize_decks(decks: Iterable[domain.Deck], username: str) -> List[Item]:
    """Generate one item per deck, skipping decks that cannot be stored."""
    user = username.lower()
    items: List[Item] = []
    seen = set()
    for deck in decks:
        if deck.id == 0:
            logger.warning('Deck id 0 used by %s; ignoring deck', user)
            continue
        if deck.id > MAX_DECK_ID:
            logger.warning('Deck id %i used by %s is out of range; ignoring'
                           ' deck', deck.id, user)
            continue
        if not deck.name or not deck.name.strip():
            logger.warning('Deck %i owned by %s has an invalid name',
                           deck.id, user)
            continue
        if deck.id in seen:
            logger.warning('Deck %i owned by %s has a duplicate id',
                           deck.id, user)
            continue
        seen.add(deck.id)

        cards: Dict[str, int] = {}
        for card in deck.cards:
            if card.count == 0:
                continue
            if str(card.id) in cards:
                logger.warning('Duplicate card %i in deck %i owned by %s',
                               card.id, deck.id, user)
                continue
            cards[str(card.id)] = card.count
        items.append({**_key(user, deck_property(deck.id)),
                      DISPLAY_NAME: deck.name,
                      CARDS: cards})
    return items


def serialize_achievements(achievements: Iterable[domain.Achievement],
                           username: str) -> Item:
    """Generate the achievements item; duplicate ids are dropped."""
    user = username.lower()
    entries: List[Dict[str, Any]] = []
    seen = set()
    for achievement in achievements:
        if achievement.id in seen:
            logger.warning('Duplicate achievement %i in the account of %s',
                           achievement.id, user)
            continue
        seen.add(achievement.id)
        entries.append({'id': achievement.id,
                        'cp': achievement.complete,
                        'st': achievement.state})
    return {**_key(user, ACHIEVEMENTS), ACHIEVEMENT_LIST: entries}


def serialize_shards(account: domain.Account, username: str) -> List[Item]:
    """Generate every item of an account except the basic info."""
    lower, upper = serialize_cards(account.cards, username)
    items = [shard for shard in (lower, upper) if shard is not None]
    items.append(serialize_achievements(account.achievements, username))
    items.extend(serialize_decks(account.decks, username))
    return items


def _string(item: Item, attribute: str) -> Optional[str]:
    value = item.get(attribute)
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def _positive_uint16(value: Any) -> Optional[int]:
    number = to_int(value)
    if number is None or not 0 < number <= domain.UINT16_MAX:
        return None
    return number


def deserialize_basic_info(item: Optional[Item]) \
        -> Optional[domain.BasicInfo]:
    """
    Read the basic info item of an account.

    Returns
    -------
    :class:`.domain.BasicInfo` or None
        ``None`` if a required attribute is missing or malformed.

    """
    if not item:
        return None
    user = item.get(PARTITION_KEY)
    for attribute in (PARTITION_KEY, EMAIL, DISPLAY_NAME, TOKEN):
        if _string(item, attribute) is None:
            logger.warning('Account %s has an invalid %s attribute',
                           user, attribute)
            return None
    coins = to_int(item.get(COINS))
    if coins is None or not 0 <= coins <= domain.UINT64_MAX:
        logger.warning('Account %s has an invalid %s attribute', user, COINS)
        return None
    return domain.BasicInfo(
        username=item[PARTITION_KEY],
        email=_string(item, ORIG_EMAIL) or item[EMAIL],
        display_name=item[DISPLAY_NAME],
        coins=coins,
        verified=item.get(VERIFIED) is True,
        token_id=item[TOKEN]
    )


def _read_cards(cards: Dict[str, Any], user: Any, where: str) \
        -> List[domain.Card]:
    output = []
    for key, value in cards.items():
        card_id = _positive_uint16(key)
        if card_id is None:
            logger.warning('Invalid card id %r in %s of %s', key, where, user)
            continue
        count = _positive_uint16(value)
        if count is None:
            logger.warning('Invalid count %r for card %i in %s of %s',
                           value, card_id, where, user)
            continue
        output.append(domain.Card(id=card_id, count=count))
    return output


def deserialize_cards(item: Optional[Item]) -> Optional[List[domain.Card]]:
    """Read one card shard."""
    if not item:
        return None
    cards = item.get(CARDS)
    if not isinstance(cards, dict):
        logger.warning('Account %s has an invalid card shard %s',
                       item.get(PARTITION_KEY), item.get(SORT_KEY))
        return None
    return _read_cards(cards, item.get(PARTITION_KEY), 'the card list')


def deserialize_deck(item: Optional[Item]) -> Optional[domain.Deck]:
    """Read one deck item; the deck id is derived from ``Property``."""
    if not item:
        return None
    user = item.get(PARTITION_KEY)
    prop = to_int(item.get(SORT_KEY))
    if prop is None or not MIN_DECK_ID <= prop - DECK_OFFSET <= MAX_DECK_ID:
        logger.warning('Account %s has a deck with an invalid property %r',
                       user, item.get(SORT_KEY))
        return None
    deck_id = prop - DECK_OFFSET
    name = _string(item, DISPLAY_NAME)
    if name is None:
        logger.warning('Account %s has deck %i with an invalid name',
                       user, deck_id)
        return None
    cards = item.get(CARDS)
    if not isinstance(cards, dict):
        logger.warning('Account %s has deck %i with an invalid card list',
                       user, deck_id)
        return None
    return domain.Deck(id=deck_id, name=name,
                       cards=_read_cards(cards, user, f'deck {deck_id}'))


def deserialize_achievements(item: Optional[Item]) \
        -> Optional[List[domain.Achievement]]:
    """Read the achievements item; bad entries are skipped."""
    if not item:
        return None
    user = item.get(PARTITION_KEY)
    entries = item.get(ACHIEVEMENT_LIST)
    if not isinstance(entries, list):
        logger.warning('Account %s has an invalid achievement list', user)
        return None
    output: List[domain.Achievement] = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning('Account %s has a malformed achievement', user)
            continue
        achievement_id = to_int(entry.get('id'))
        state = to_int(entry.get('st'))
        complete = entry.get('cp')
        if achievement_id is None or not isinstance(complete, bool) \
                or state is None:
            logger.warning('Account %s has an invalid achievement %r',
                           user, entry.get('id'))
            continue
        if achievement_id in seen:
            logger.warning('Account %s has duplicate achievement %i',
                           user, achievement_id)
            continue
        try:
            achievement = domain.Achievement(id=achievement_id,
                                             complete=complete, state=state)
        except ModelValidationError:
            logger.warning('Account %s has an out of range achievement %i',
                           user, achievement_id)
            continue
        seen.add(achievement_id)
        output.append(achievement)
    return output


def assemble_account(info: domain.BasicInfo, items: Iterable[Item]) \
        -> domain.Account:
    """
    Rebuild the account aggregate from its basic info and remaining items.

    Malformed shards are skipped (and logged by the deserializers); the
    caller decides whether what is left is usable.
    """
    cards: List[domain.Card] = []
    decks: List[domain.Deck] = []
    achievements: List[domain.Achievement] = []
    for item in items:
        prop = to_int(item.get(SORT_KEY))
        if prop in (CARDS_LOWER, CARDS_UPPER):
            cards.extend(deserialize_cards(item) or [])
        elif prop == ACHIEVEMENTS:
            achievements = deserialize_achievements(item) or []
        elif prop is not None and prop > RESERVED:
            deck = deserialize_deck(item)
            if deck is not None:
                decks.append(deck)
    return domain.Account(info=info, cards=cards,
                          decks=sorted(decks, key=lambda deck: deck.id),
                          achievements=achievements)
