"""
Integration with the DynamoDB account table.

Accounts are stored as several items sharing the partition key ``User`` and
distinguished by the numeric sort key ``Property`` (see
:mod:`regicide_auth.accounts.schema`). This module exposes the small set of
operations that the account store needs: consistent reads, conditional
writes, key and secondary-index queries, and batched writes that report
which items were not processed.

Conditions are expressed with :class:`Condition` so that callers do not
depend on boto3 types. A rejected condition raises :class:`.ConditionFailed`,
throttling or a connection failure raises :class:`.Unavailable`, and any
other failure raises :class:`.StoreError`. Reads are retried a few times
when the store is unavailable; writes are not.
"""

import logging
from decimal import Decimal
from functools import reduce
from operator import and_, or_
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError
from retry import retry

from ..exceptions import ConditionFailed, StoreError, Unavailable

logger = logging.getLogger(__name__)

PARTITION_KEY = 'User'
SORT_KEY = 'Property'
EMAIL_INDEX = 'Email-index'
EMAIL_ATTRIBUTE = 'Email'
MAX_BATCH_SIZE = 25
"""DynamoDB accepts at most this many items per batch write request."""

CONDITIONAL_CHECK_FAILED = 'ConditionalCheckFailedException'
TRANSIENT_ERRORS = {
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
    'InternalServerError'
}

Item = Dict[str, Any]


class Condition(NamedTuple):
    """A predicate over an item attribute, or a combination of predicates."""

    EQUALS = 'eq'
    NOT_EQUALS = 'ne'
    NOT_EXISTS = 'not_exists'
    GREATER_THAN = 'gt'
    LESS_THAN = 'lt'
    EXISTS = 'exists'
    ANY = 'or'
    ALL = 'and'

    operator: str
    attribute: str
    value: Any = None

    def to_attr(self) -> Any:
        """Express the condition as a boto3 attribute condition."""
        if self.operator == Condition.ANY:
            return reduce(or_, [c.to_attr() for c in self.value])
        if self.operator == Condition.ALL:
            return reduce(and_, [c.to_attr() for c in self.value])
        attr = Attr(self.attribute)
        if self.operator == Condition.NOT_EXISTS:
            return attr.not_exists()
        if self.operator == Condition.EXISTS:
            return attr.exists()
        return getattr(attr, self.operator)(self.value)

    def to_key(self) -> Any:
        """Express the condition as a boto3 key condition."""
        return getattr(Key(self.attribute), self.operator)(self.value)


def equals(attribute: str, value: Any) -> Condition:
    return Condition(Condition.EQUALS, attribute, value)


def not_equals(attribute: str, value: Any) -> Condition:
    return Condition(Condition.NOT_EQUALS, attribute, value)


def not_exists(attribute: str) -> Condition:
    return Condition(Condition.NOT_EXISTS, attribute)


def exists(attribute: str) -> Condition:
    return Condition(Condition.EXISTS, attribute)


def greater_than(attribute: str, value: Any) -> Condition:
    return Condition(Condition.GREATER_THAN, attribute, value)


def less_than(attribute: str, value: Any) -> Condition:
    return Condition(Condition.LESS_THAN, attribute, value)


def any_of(*conditions: Condition) -> Condition:
    """Holds if at least one of ``conditions`` holds."""
    return Condition(Condition.ANY, '', conditions)


def all_of(*conditions: Condition) -> Condition:
    """Holds if every one of ``conditions`` holds."""
    return Condition(Condition.ALL, '', conditions)


def key_of(user: str, prop: int) -> Item:
    """Primary key of one account item."""
    return {PARTITION_KEY: user, SORT_KEY: prop}


class DynamoDBStore(object):
    """
    Account table accessed through the boto3 resource API.

    Items are plain dicts; numbers come back from DynamoDB as
    :class:`decimal.Decimal`.
    """

    def __init__(self, table_name: str, region_name: Optional[str] = None,
                 endpoint_url: Optional[str] = None,
                 resource: Any = None) -> None:
        """Configure the table; the boto3 resource is created lazily."""
        self.table_name = table_name
        self._region_name = region_name
        self._endpoint_url = endpoint_url
        self._resource = resource
        self._table = None

    @property
    def resource(self) -> Any:
        """Lazy initialization of the DynamoDB resource."""
        if self._resource is None:
            kwargs = {}
            if self._region_name:
                kwargs['region_name'] = self._region_name
            if self._endpoint_url:
                kwargs['endpoint_url'] = self._endpoint_url
            logger.debug('New DynamoDB resource for table %s', self.table_name)
            self._resource = boto3.resource('dynamodb', **kwargs)
        return self._resource

    @property
    def table(self) -> Any:
        if self._table is None:
            self._table = self.resource.Table(self.table_name)
        return self._table

    @retry(Unavailable, tries=3, delay=0.5, backoff=2)
    def get(self, user: str, prop: int, consistent: bool = False,
            attributes: Optional[List[str]] = None) -> Optional[Item]:
        """
        Read one item.

        Parameters
        ----------
        user : str
        prop : int
        consistent : bool
            Use a strongly consistent read.
        attributes : list
            If given, only these attributes are returned.

        Returns
        -------
        dict or None
            ``None`` if there is no such item.

        """
        kwargs: Dict[str, Any] = {'Key': key_of(user, prop),
                                  'ConsistentRead': consistent}
        if attributes:
            names = {f'#a{i}': name for i, name in enumerate(attributes)}
            kwargs['ProjectionExpression'] = ', '.join(names)
            kwargs['ExpressionAttributeNames'] = names
        response = self._call('get_item', **kwargs)
        return response.get('Item') or None

    def put(self, item: Item, condition: Optional[Condition] = None) -> None:
        """Write a whole item, optionally only if ``condition`` holds."""
        kwargs: Dict[str, Any] = {'Item': item}
        if condition is not None:
            kwargs['ConditionExpression'] = condition.to_attr()
        self._call('put_item', **kwargs)

    def update(self, user: str, prop: int,
               set_attributes: Optional[Dict[str, Any]] = None,
               remove_attributes: Optional[Iterable[str]] = None,
               condition: Optional[Condition] = None,
               return_values: str = 'NONE') -> Item:
        """
        Set and/or remove attributes of one item.

        Returns
        -------
        dict
            The attributes selected by ``return_values`` (e.g. ``ALL_NEW``).

        """
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        clauses = []
        if set_attributes:
            assignments = []
            for i, (name, value) in enumerate(set_attributes.items()):
                names[f'#s{i}'] = name
                values[f':s{i}'] = value
                assignments.append(f'#s{i} = :s{i}')
            clauses.append('SET ' + ', '.join(assignments))
        if remove_attributes:
            removals = []
            for i, name in enumerate(remove_attributes):
                names[f'#r{i}'] = name
                removals.append(f'#r{i}')
            clauses.append('REMOVE ' + ', '.join(removals))
        if not clauses:
            raise ValueError('Nothing to update')

        kwargs: Dict[str, Any] = {
            'Key': key_of(user, prop),
            'UpdateExpression': ' '.join(clauses),
            'ExpressionAttributeNames': names,
            'ReturnValues': return_values
        }
        if values:
            kwargs['ExpressionAttributeValues'] = values
        if condition is not None:
            kwargs['ConditionExpression'] = condition.to_attr()
        response = self._call('update_item', **kwargs)
        return response.get('Attributes') or {}

    def delete(self, user: str, prop: int) -> None:
        """Delete one item."""
        self._call('delete_item', Key=key_of(user, prop))

    @retry(Unavailable, tries=3, delay=0.5, backoff=2)
    def query(self, user: str, sort_key: Optional[Condition] = None,
              consistent: bool = False) -> List[Item]:
        """Get all items of an account whose sort key matches ``sort_key``."""
        key_condition = Key(PARTITION_KEY).eq(user)
        if sort_key is not None:
            key_condition = key_condition & sort_key.to_key()
        kwargs: Dict[str, Any] = {'KeyConditionExpression': key_condition,
                                  'ConsistentRead': consistent}
        items: List[Item] = []
        while True:
            response = self._call('query', **kwargs)
            items.extend(response.get('Items', []))
            if 'LastEvaluatedKey' not in response:
                return items
            kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

    @retry(Unavailable, tries=3, delay=0.5, backoff=2)
    def query_index(self, index_name: str, attribute: str, value: Any,
                    filter: Optional[Condition] = None,
                    limit: Optional[int] = None) -> List[Item]:
        """
        Query a global secondary index.

        Secondary indexes are eventually consistent: a recent write may not
        be visible yet.
        """
        kwargs: Dict[str, Any] = {
            'IndexName': index_name,
            'KeyConditionExpression': Key(attribute).eq(value)
        }
        if filter is not None:
            kwargs['FilterExpression'] = filter.to_attr()
        if limit is not None:
            kwargs['Limit'] = limit
        response = self._call('query', **kwargs)
        return response.get('Items', [])

    def batch_put(self, items: List[Item]) -> List[Item]:
        """
        Write several items without conditions.

        Returns
        -------
        list
            Items that the store did not process; the caller should retry
            them.

        """
        unprocessed: List[Item] = []
        for start in range(0, len(items), MAX_BATCH_SIZE):
            chunk = items[start:start + MAX_BATCH_SIZE]
            request = {self.table_name: [{'PutRequest': {'Item': item}}
                                         for item in chunk]}
            try:
                response = self.resource.batch_write_item(RequestItems=request)
            except (ClientError, BotoCoreError) as e:
                raise _translate('batch_write_item', e) from e
            for write in response.get('UnprocessedItems', {}) \
                    .get(self.table_name, []):
                unprocessed.append(write['PutRequest']['Item'])
        return unprocessed

    def create_table(self, read_capacity: int = 5,
                     write_capacity: int = 5) -> None:
        """Create the account table and its e-mail index, and wait for it."""
        throughput = {'ReadCapacityUnits': read_capacity,
                      'WriteCapacityUnits': write_capacity}
        try:
            table = self.resource.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {'AttributeName': PARTITION_KEY, 'KeyType': 'HASH'},
                    {'AttributeName': SORT_KEY, 'KeyType': 'RANGE'}
                ],
                AttributeDefinitions=[
                    {'AttributeName': PARTITION_KEY, 'AttributeType': 'S'},
                    {'AttributeName': SORT_KEY, 'AttributeType': 'N'},
                    {'AttributeName': EMAIL_ATTRIBUTE, 'AttributeType': 'S'}
                ],
                GlobalSecondaryIndexes=[{
                    'IndexName': EMAIL_INDEX,
                    'KeySchema': [
                        {'AttributeName': EMAIL_ATTRIBUTE, 'KeyType': 'HASH'}
                    ],
                    'Projection': {'ProjectionType': 'KEYS_ONLY'},
                    'ProvisionedThroughput': throughput
                }],
                ProvisionedThroughput=throughput
            )
            table.wait_until_exists()
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f'Could not create {self.table_name}: {e}') from e
        self._table = table
        logger.info('Created table %s', self.table_name)

    def _call(self, operation: str, **kwargs: Any) -> dict:
        try:
            response: dict = getattr(self.table, operation)(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise _translate(operation, e) from e
        return response


def _translate(operation: str, exc: Exception) -> StoreError:
    """Map a boto error to the store exception hierarchy."""
    if isinstance(exc, BotoCoreError):
        return Unavailable(f'{operation} failed: {exc}')
    code = exc.response.get('Error', {}).get('Code')
    if code == CONDITIONAL_CHECK_FAILED:
        return ConditionFailed(f'{operation}: condition failed')
    if code in TRANSIENT_ERRORS:
        return Unavailable(f'{operation} failed: {code}')
    return StoreError(f'{operation} failed: {exc}')


def to_int(value: Any) -> Optional[int]:
    """Coerce an integral number read from the store, or ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            return None
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None
