"""
Summarify Backend — Account Service
=====================================

What:  First-authentication hook and profile lookup.
How:   ensure_account() creates the account and its starting-balance ledger
       entry in one transaction. A second concurrent first login loses on
       the primary key and simply reads the row the winner created.
Who:   POST /api/accounts/auth, GET /api/accounts/me, tests.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from summarify.config import settings
from summarify.database import async_session_factory, transaction
from summarify.exceptions import DatabaseError, NotFoundError, ValidationError
from summarify.models.account import Account
from summarify.models.ledger_entry import EntryKind
from summarify.services.ledger_store import ledger_store

logger = logging.getLogger(__name__)

STARTING_BALANCE_REASON = "Starting balance"


@dataclass
class AccountProfile:
    account_id: str
    email: Optional[str]
    display_name: Optional[str]
    balance: int
    created_at: datetime
    created: bool = False


class AccountService:

    async def ensure_account(
        self,
        account_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> AccountProfile:
        """
        Return the account, creating it on first sight.

        A new account starts at balance 0 and receives one `admin_adjustment`
        entry of +settings.starting_credits, so the starting balance is part
        of the log like every other credit.
        """
        account_id = (account_id or "").strip()
        if not account_id:
            raise ValidationError("Account identity is required", field="account_id")

        existing = await self._load(account_id)
        if existing is not None:
            return self._to_profile(existing)

        try:
            async with transaction(f"ensure_account:{account_id}") as session:
                account = Account(
                    id=account_id,
                    email=email,
                    display_name=display_name,
                    balance=0,
                )
                session.add(account)
                await session.flush()

                if settings.starting_credits > 0:
                    await ledger_store.append_entry(
                        session,
                        account_id=account_id,
                        delta=settings.starting_credits,
                        kind=EntryKind.ADMIN_ADJUSTMENT,
                        reason=STARTING_BALANCE_REASON,
                        reference_type="account",
                        reference_id=account_id,
                    )
                balance = await ledger_store.read_balance(session, account_id)
        except IntegrityError:
            # Concurrent first login created it first
            logger.info("Account %s created concurrently; using existing row", account_id)
            existing = await self._load(account_id)
            if existing is None:
                raise DatabaseError(context={"account_id": account_id})
            return self._to_profile(existing)
        except SQLAlchemyError as e:
            logger.error("Failed to create account %s: %s", account_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create the account. Please try again.",
                context={"account_id": account_id},
            ) from e

        logger.info(
            "Account created: %s with %d starting credits",
            account_id,
            settings.starting_credits,
        )
        account.balance = balance
        profile = self._to_profile(account)
        profile.created = True
        return profile

    async def get_profile(self, account_id: str) -> AccountProfile:
        account = await self._load(account_id)
        if account is None:
            raise NotFoundError(resource="account", resource_id=account_id)
        return self._to_profile(account)

    async def _load(self, account_id: str) -> Optional[Account]:
        async with async_session_factory() as session:
            return await ledger_store.get_account(session, account_id)

    @staticmethod
    def _to_profile(account: Account) -> AccountProfile:
        return AccountProfile(
            account_id=account.id,
            email=account.email,
            display_name=account.display_name,
            balance=account.balance,
            created_at=account.created_at,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
account_service = AccountService()
