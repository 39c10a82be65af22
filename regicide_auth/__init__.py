"""
Account and session services for the Regicide game backend.

Players log in and register through the session functions in
:mod:`regicide_auth.handlers`, which issue signed session tokens
(:mod:`regicide_auth.auth.tokens`). Every gated request is checked by the
gateway authorizer (:mod:`regicide_auth.auth.authorizer`), which only needs
the signing key. Accounts live in a DynamoDB table, sharded by property
(:mod:`regicide_auth.accounts.schema`).

Quick start
-----------

1. Install this package, e.g. ``pip install -e .[test]``.
2. Provide the service secret: either set ``TABLE_NAME``, ``SIGNING_KEY``
   (at least 64 bytes) and ``PASSWORD_SALT`` (at least 32 bytes), or store
   ``{"table": ..., "sigkey": ..., "salt": ...}`` in Secrets Manager under
   ``SECRET_ID``.
3. Create the table with ``regicide-auth create-table <name>``.
4. Deploy the handlers in :mod:`regicide_auth.handlers` as functions.

"""
