"""Purchase ledger: the single authority on who is entitled to which item.

Writes are idempotent on (buyer_id, item_id). Both implementations lean on
a storage-level unique constraint and translate its duplicate-key rejection
into ``RecordOutcome.ALREADY_EXISTS``; neither does check-then-insert.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.core.exceptions import LedgerUnavailableError
from storefront.db.models.purchase import Purchase
from storefront.integrations.supabase import SupabaseClient
from storefront.schemas.purchases import BatchRecordResult, RecordOutcome

logger = structlog.get_logger(__name__)

# Postgres unique_violation
_UNIQUE_VIOLATION = "23505"
_SQLITE_UNIQUE_ERROR = "SQLITE_CONSTRAINT_UNIQUE"
_PURCHASE_CONSTRAINT = "uq_purchase_buyer_item"


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when the driver reports a duplicate key rather than another constraint failure."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == _UNIQUE_VIOLATION
    errorname = getattr(orig, "sqlite_errorname", None)
    if errorname:
        return errorname == _SQLITE_UNIQUE_ERROR
    message = str(orig)
    return _PURCHASE_CONSTRAINT in message or "UNIQUE constraint failed" in message


@runtime_checkable
class PurchaseLedger(Protocol):
    async def is_entitled(self, buyer_id: str, item_id: int) -> bool:
        """True if a purchase record exists. Raises LedgerUnavailableError on storage failure."""
        ...

    async def record_if_absent(self, buyer_id: str, item_id: int, session_id: str | None = None) -> RecordOutcome:
        """Insert the purchase unless it already exists. Safe under concurrent retries."""
        ...

    async def record_many_if_absent(
        self, buyer_id: str, item_ids: Sequence[int], session_id: str | None = None
    ) -> BatchRecordResult:
        """Record each item independently and report per-item outcomes."""
        ...


class _BatchRecorder(ABC):
    """Shared batch semantics: one idempotent write per item, failures collected not raised."""

    @abstractmethod
    async def record_if_absent(self, buyer_id: str, item_id: int, session_id: str | None = None) -> RecordOutcome:
        ...

    async def record_many_if_absent(
        self, buyer_id: str, item_ids: Sequence[int], session_id: str | None = None
    ) -> BatchRecordResult:
        result = BatchRecordResult()
        for item_id in dict.fromkeys(item_ids):
            try:
                outcome = await self.record_if_absent(buyer_id, item_id, session_id)
            except LedgerUnavailableError:
                result.failed.append(item_id)
                continue
            if outcome is RecordOutcome.INSERTED:
                result.inserted.append(item_id)
            else:
                result.already_existed.append(item_id)

        if result.failed:
            logger.error(
                "purchase_batch_incomplete",
                buyer_id=buyer_id,
                session_id=session_id,
                status=result.status.value,
                inserted=result.inserted,
                already_existed=result.already_existed,
                failed=result.failed,
            )
        return result


class SqlPurchaseLedger(_BatchRecorder):
    """Ledger on the ``purchases`` table via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def is_entitled(self, buyer_id: str, item_id: int) -> bool:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Purchase.id)
                    .where(Purchase.buyer_id == buyer_id, Purchase.item_id == item_id)
                    .limit(1)
                )
                found = result.scalar_one_or_none() is not None
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("purchase_check_failed", buyer_id=buyer_id, item_id=item_id, error=str(exc))
            raise LedgerUnavailableError(f"Failed to check purchase: {exc}") from exc

        if not found:
            logger.debug("purchase_not_found", buyer_id=buyer_id, item_id=item_id)
        return found

    async def record_if_absent(self, buyer_id: str, item_id: int, session_id: str | None = None) -> RecordOutcome:
        try:
            async with self.session_factory() as session:
                try:
                    session.add(Purchase(buyer_id=buyer_id, item_id=item_id, stripe_session_id=session_id or None))
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    if not is_unique_violation(exc):
                        logger.warning(
                            "purchase_record_rejected",
                            buyer_id=buyer_id,
                            item_id=item_id,
                            error=str(exc.orig),
                        )
                        raise LedgerUnavailableError(f"Purchase rejected by database: {exc.orig}") from exc
                    # Concurrent or repeated delivery already wrote this purchase
                    logger.info(
                        "purchase_already_recorded",
                        buyer_id=buyer_id,
                        item_id=item_id,
                        session_id=session_id,
                    )
                    return RecordOutcome.ALREADY_EXISTS
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("purchase_record_failed", buyer_id=buyer_id, item_id=item_id, error=str(exc))
            raise LedgerUnavailableError(f"Failed to record purchase: {exc}") from exc

        logger.info("purchase_recorded", buyer_id=buyer_id, item_id=item_id, session_id=session_id)
        return RecordOutcome.INSERTED


class PostgrestPurchaseLedger(_BatchRecorder):
    """Ledger on a Supabase table through PostgREST.

    The table must carry a unique constraint on (buyer_id, item_id); PostgREST
    reports the violation as HTTP 409 with code 23505.
    """

    def __init__(self, client: SupabaseClient, table: str = "purchases"):
        self.client = client
        self.table = table

    async def is_entitled(self, buyer_id: str, item_id: int) -> bool:
        try:
            rows = await self.client.select(
                self.table,
                {"buyer_id": f"eq.{buyer_id}", "item_id": f"eq.{item_id}", "select": "id", "limit": "1"},
            )
        except httpx.HTTPError as exc:
            logger.warning("purchase_check_failed", buyer_id=buyer_id, item_id=item_id, error=str(exc))
            raise LedgerUnavailableError(f"Failed to check purchase: {exc}") from exc
        return bool(rows)

    async def record_if_absent(self, buyer_id: str, item_id: int, session_id: str | None = None) -> RecordOutcome:
        row: dict = {"buyer_id": buyer_id, "item_id": item_id}
        if session_id:
            row["stripe_session_id"] = session_id

        try:
            response = await self.client.request(
                "POST",
                f"/rest/v1/{self.table}",
                json=row,
                headers={"Prefer": "return=minimal"},
            )
        except httpx.HTTPError as exc:
            logger.warning("purchase_record_failed", buyer_id=buyer_id, item_id=item_id, error=str(exc))
            raise LedgerUnavailableError(f"Failed to record purchase: {exc}") from exc

        if response.is_success:
            logger.info("purchase_recorded", buyer_id=buyer_id, item_id=item_id, session_id=session_id)
            return RecordOutcome.INSERTED

        if self._is_duplicate(response):
            logger.info("purchase_already_recorded", buyer_id=buyer_id, item_id=item_id, session_id=session_id)
            return RecordOutcome.ALREADY_EXISTS

        logger.warning(
            "purchase_record_rejected",
            buyer_id=buyer_id,
            item_id=item_id,
            status_code=response.status_code,
            body=response.text[:500],
        )
        raise LedgerUnavailableError(f"Purchase insert rejected with status {response.status_code}")

    @staticmethod
    def _is_duplicate(response: httpx.Response) -> bool:
        if response.status_code != 409:
            return False
        try:
            body = response.json()
        except ValueError:
            return True
        # 409 is also used for foreign key violations (23503)
        return not isinstance(body, dict) or body.get("code") in (None, _UNIQUE_VIOLATION)
