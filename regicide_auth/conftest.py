from unittest import mock

import pytest

from regicide_auth.accounts.store import AccountStore
from regicide_auth.sessions import SessionServices
from regicide_auth.tests.util import InMemoryStore, SALT, SIGNING_KEY, \
    make_template


@pytest.fixture()
def kvstore():
    return InMemoryStore()


@pytest.fixture()
def accounts(kvstore):
    return AccountStore(kvstore, SALT, sleep=mock.MagicMock(),
                        clock=lambda: 0.0)


@pytest.fixture()
def services(accounts):
    return SessionServices(accounts, SIGNING_KEY,
                           default_account=make_template())
