"""Account and cursor persistence.

Two implementations of ``AccountStore``:

    InMemoryAccountStore — process-local dict, for tests and single-user runs
    PostgresAccountStore — ``accounts`` table via asyncpg

Schema::

    CREATE TABLE accounts (
        account_id        uuid PRIMARY KEY,
        access_token      text NOT NULL,
        refresh_token     text,
        token_expires_at  timestamptz,
        user_name         text,
        last_sync_time    timestamptz NOT NULL DEFAULT 'epoch',
        created_at        timestamptz NOT NULL DEFAULT NOW(),
        updated_at        timestamptz NOT NULL DEFAULT NOW()
    );

Cursor writes never move the cursor backwards.
"""

from __future__ import annotations

import copy
import logging
import uuid
from uuid import UUID

import asyncpg

from stepsync.fitness.base import (
    Account,
    AccountNotFoundError,
    AccountStore,
    OAuthTokens,
    SyncCursor,
)
from stepsync.services import database

logger = logging.getLogger("stepsync.fitness.store")


class InMemoryAccountStore(AccountStore):
    """Dict-backed store.  Returns copies so callers cannot mutate state."""

    def __init__(self) -> None:
        self._accounts: dict[UUID, Account] = {}

    async def link_account(
        self, credential: OAuthTokens, user_name: str | None = None
    ) -> Account:
        return self.add_account(credential, user_name)

    def add_account(
        self,
        credential: OAuthTokens,
        user_name: str | None = None,
        account_id: UUID | None = None,
    ) -> Account:
        """Create an account with a fresh (epoch) cursor, synchronously."""
        account = Account(
            account_id=account_id or uuid.uuid4(),
            credential=credential,
            user_name=user_name,
        )
        self._accounts[account.account_id] = account
        logger.info("Linked account %s", account.account_id)
        return copy.deepcopy(account)

    async def load_account(self, account_id: UUID) -> Account:
        try:
            return copy.deepcopy(self._accounts[account_id])
        except KeyError:
            raise AccountNotFoundError(f"No account {account_id}") from None

    async def load_cursor(self, account_id: UUID) -> SyncCursor:
        account = await self.load_account(account_id)
        return account.cursor

    async def store_cursor(self, account_id: UUID, cursor: SyncCursor) -> None:
        if account_id not in self._accounts:
            raise AccountNotFoundError(f"No account {account_id}")
        current = self._accounts[account_id].cursor
        if cursor.last_processed_time < current.last_processed_time:
            logger.warning(
                "Ignoring cursor regression for %s: %s < %s",
                account_id,
                cursor.last_processed_time.isoformat(),
                current.last_processed_time.isoformat(),
            )
            return
        self._accounts[account_id].cursor = SyncCursor(cursor.last_processed_time)


class PostgresAccountStore(AccountStore):
    """``accounts`` table via the shared asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool | None = None) -> None:
        """Initialize the store.

        Args:
            pool: Explicit pool; defaults to the application pool from
                  ``stepsync.services.database``.
        """
        self._pool = pool

    async def link_account(
        self, credential: OAuthTokens, user_name: str | None = None
    ) -> Account:
        """Insert a new account with a fresh (epoch) cursor."""
        account_id = uuid.uuid4()
        await database.execute(
            """
            INSERT INTO accounts (account_id, access_token, refresh_token, token_expires_at, user_name)
            VALUES ($1, $2, $3, $4, $5)
            """,
            account_id,
            credential.access_token,
            credential.refresh_token,
            credential.expires_at,
            user_name,
            pool=self._pool,
        )
        logger.info("Linked account %s", account_id)
        return Account(account_id=account_id, credential=credential, user_name=user_name)

    async def load_account(self, account_id: UUID) -> Account:
        row = await database.fetchrow(
            "SELECT * FROM accounts WHERE account_id = $1", account_id, pool=self._pool
        )
        if row is None:
            raise AccountNotFoundError(f"No account {account_id}")
        return Account(
            account_id=row["account_id"],
            credential=OAuthTokens(
                access_token=row["access_token"],
                refresh_token=row["refresh_token"],
                expires_at=row["token_expires_at"],
            ),
            user_name=row["user_name"],
            cursor=SyncCursor(row["last_sync_time"]),
        )

    async def load_cursor(self, account_id: UUID) -> SyncCursor:
        value = await database.fetchval(
            "SELECT last_sync_time FROM accounts WHERE account_id = $1",
            account_id,
            pool=self._pool,
        )
        if value is None:
            raise AccountNotFoundError(f"No account {account_id}")
        return SyncCursor(value)

    async def store_cursor(self, account_id: UUID, cursor: SyncCursor) -> None:
        status = await database.execute(
            """
            UPDATE accounts
               SET last_sync_time = GREATEST(last_sync_time, $2), updated_at = NOW()
             WHERE account_id = $1
            """,
            account_id,
            cursor.last_processed_time,
            pool=self._pool,
        )
        if status == "UPDATE 0":
            raise AccountNotFoundError(f"No account {account_id}")
