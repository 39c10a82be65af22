"""In-memory stand-in for :class:`.DynamoDBStore`."""

import copy
import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .. import domain
from ..exceptions import ConditionFailed
from ..services.kvstore import Condition, Item, PARTITION_KEY, SORT_KEY

SIGNING_KEY = b'k' * 64
SALT = b's' * 32
PASS_HASH = 'cGFzc3dvcmQgaGFzaGVkIGJ5IHRoZSBjbGllbnQgYXBw'


def _stored(value: Any) -> Any:
    """Numbers come back from DynamoDB as :class:`Decimal`."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, dict):
        return {k: _stored(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_stored(v) for v in value]
    return value


def matches(item: Optional[Item], condition: Optional[Condition]) -> bool:
    """Evaluate a condition against an item (``None`` if it does not exist)."""
    if condition is None:
        return True
    if condition.operator == Condition.ANY:
        return any(matches(item, c) for c in condition.value)
    if condition.operator == Condition.ALL:
        return all(matches(item, c) for c in condition.value)
    present = item is not None and condition.attribute in item
    value = item.get(condition.attribute) if present else None
    if condition.operator == Condition.NOT_EXISTS:
        return not present
    if condition.operator == Condition.EXISTS:
        return present
    if condition.operator == Condition.EQUALS:
        return present and value == condition.value
    if condition.operator == Condition.NOT_EQUALS:
        return not present or value != condition.value
    if condition.operator == Condition.GREATER_THAN:
        return present and value > condition.value
    if condition.operator == Condition.LESS_THAN:
        return present and value < condition.value
    raise ValueError(f'Unsupported operator {condition.operator}')


class InMemoryStore(object):
    """
    Key-value store with the same operations and conditional semantics.

    ``unprocessed`` lists, per batch call, how many items (from the end of the
    batch) to report back as unprocessed. ``failures`` maps an operation name
    to an exception to raise.
    """

    def __init__(self) -> None:
        self.items: Dict[Tuple[str, int], Item] = {}
        self.unprocessed: List[int] = []
        self.batches: List[List[Item]] = []
        self.failures: Dict[str, Exception] = {}
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failures:
            raise self.failures[operation]

    @staticmethod
    def _key(user: str, prop: Any) -> Tuple[str, int]:
        return user, int(prop)

    def item(self, user: str, prop: int) -> Optional[Item]:
        """Peek at a stored item."""
        return self.items.get(self._key(user, prop))

    def get(self, user: str, prop: int, consistent: bool = False,
            attributes: Optional[List[str]] = None) -> Optional[Item]:
        self._enter('get')
        item = self.items.get(self._key(user, prop))
        if item is None:
            return None
        if attributes:
            return {k: copy.deepcopy(v) for k, v in item.items()
                    if k in attributes} or None
        return copy.deepcopy(item)

    def put(self, item: Item, condition: Optional[Condition] = None) -> None:
        self._enter('put')
        key = self._key(item[PARTITION_KEY], item[SORT_KEY])
        with self._lock:
            if not matches(self.items.get(key), condition):
                raise ConditionFailed('put: condition failed')
            self.items[key] = _stored(copy.deepcopy(item))

    def update(self, user: str, prop: int,
               set_attributes: Optional[Dict[str, Any]] = None,
               remove_attributes: Optional[List[str]] = None,
               condition: Optional[Condition] = None,
               return_values: str = 'NONE') -> Item:
        self._enter('update')
        key = self._key(user, prop)
        with self._lock:
            existing = self.items.get(key)
            if not matches(existing, condition):
                raise ConditionFailed('update: condition failed')
            item = existing or {PARTITION_KEY: user, SORT_KEY: Decimal(prop)}
            item.update(_stored(copy.deepcopy(set_attributes or {})))
            for name in remove_attributes or []:
                item.pop(name, None)
            self.items[key] = item
        if return_values == 'ALL_NEW':
            return copy.deepcopy(item)
        return {}

    def delete(self, user: str, prop: int) -> None:
        self._enter('delete')
        with self._lock:
            self.items.pop(self._key(user, prop), None)

    def query(self, user: str, sort_key: Optional[Condition] = None,
              consistent: bool = False) -> List[Item]:
        self._enter('query')
        found = [copy.deepcopy(item) for (owner, _), item
                 in sorted(self.items.items()) if owner == user
                 and matches(item, sort_key)]
        return found

    def query_index(self, index_name: str, attribute: str, value: Any,
                    filter: Optional[Condition] = None,
                    limit: Optional[int] = None) -> List[Item]:
        self._enter('query_index')
        found = [item for _, item in sorted(self.items.items())
                 if item.get(attribute) == value]
        if limit is not None:
            found = found[:limit]     # DynamoDB limits before filtering.
        return [copy.deepcopy(item) for item in found
                if matches(item, filter)]

    def batch_put(self, items: List[Item]) -> List[Item]:
        self._enter('batch_put')
        self.batches.append(copy.deepcopy(items))
        skipped = self.unprocessed.pop(0) if self.unprocessed else 0
        skipped = min(skipped, len(items))
        written = items[:len(items) - skipped]
        with self._lock:
            for item in written:
                key = self._key(item[PARTITION_KEY], item[SORT_KEY])
                self.items[key] = _stored(copy.deepcopy(item))
        return copy.deepcopy(items[len(items) - skipped:])


def make_template() -> domain.Account:
    """A default account with items in every kind of shard."""
    return domain.Account(
        info=domain.BasicInfo(username='default', email='default@example.com',
                              display_name='Default', coins=500),
        cards=[domain.Card(id=1, count=3), domain.Card(id=2, count=2),
               domain.Card(id=40000, count=1)],
        decks=[domain.Deck(id=1, name='Starter Deck',
                           cards=[domain.Card(id=1, count=2)]),
               domain.Deck(id=2, name='Second Deck',
                           cards=[domain.Card(id=40000, count=1)])],
        achievements=[domain.Achievement(id=1),
                      domain.Achievement(id=2, complete=True, state=4)]
    )
