import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Callable

import httpx
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import ReconciliationError, SyncNotConfiguredError, TaxServiceError
from helpers import utcnow
from queries.sync_state import get_state, set_state
from services.reconciler import Reconciler
from services.tax_client import TaxServiceClient, build_condition
from services.token_store import SyncPrincipal, TokenStore

log = logging.getLogger("sync")


@dataclass
class SyncResult:
    anchor: datetime                 # new watermark (= window end)
    watermark_before: datetime
    record_count: int = 0
    buyer_count: int = 0
    supplier_count: int = 0
    new: int = 0
    updated: int = 0
    transfers_created: int = 0
    failed_invoices: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["anchor"] = self.anchor.isoformat()
        data["watermark_before"] = self.watermark_before.isoformat()
        return data


class SyncService:
    """
    One full pass: window -> counts -> pages (buyer, then supplier) -> reconcile each
    -> advance watermark. The watermark only moves when the pass completes.
    """

    def __init__(
        self,
        tokens: TokenStore,
        client_factory: Callable[[SyncPrincipal], TaxServiceClient] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.tokens = tokens
        self.client_factory = client_factory or (lambda principal: TaxServiceClient(principal, tokens))
        self._clock = clock

    async def _fetch_all(self, client, condition: str, count: int) -> list[dict]:
        page_size = settings.SYNC_PAGE_SIZE
        rows: list[dict] = []
        offset = 0
        while offset < count:
            page = await client.fetch_page(condition, offset, page_size)
            rows.extend(page)
            offset += page_size
        return rows

    async def run_sync(self, db: Session, principal: SyncPrincipal, since: datetime | None = None) -> SyncResult:
        tenant = principal.tenant_id

        # fixed before any fetch: records created mid-run land in the next window
        window_end = self._clock()

        state = get_state(db, tenant)
        watermark = since or (state.watermark if state else None)
        if watermark is None:
            raise SyncNotConfiguredError(f"no watermark for tenant {tenant}; run once with a start date")

        client = self.client_factory(principal)
        buyer_condition = build_condition("buyer", tenant, watermark, window_end)
        supplier_condition = build_condition("supplier", tenant, watermark, window_end)

        log.info("sync window %s .. %s (tin=%s)", watermark, window_end, tenant)

        buyer_count = await client.fetch_count(buyer_condition)
        supplier_count = await client.fetch_count(supplier_condition)
        log.info("buyer count=%s supplier count=%s", buyer_count, supplier_count)

        records = await self._fetch_all(client, buyer_condition, buyer_count)
        records += await self._fetch_all(client, supplier_condition, supplier_count)

        result = SyncResult(
            anchor=window_end,
            watermark_before=watermark,
            record_count=len(records),
            buyer_count=buyer_count,
            supplier_count=supplier_count,
        )

        reconciler = Reconciler(client)
        for raw in records:
            inv_id = str(raw.get("id") or "")
            try:
                res = await reconciler.reconcile(db, raw, tenant)
            except ReconciliationError as e:
                db.rollback()
                result.failed_invoices.append(inv_id)
                log.warning("sync skipped invoice %s: %s", inv_id, e)
                continue
            except (httpx.HTTPError, TaxServiceError):
                # service unreachable mid-run: abort, the window is retried next run
                db.rollback()
                log.exception("sync aborted at invoice %s; watermark unchanged", inv_id)
                raise
            except Exception as e:
                # IMPORTANT: keep session usable for next invoices in same run
                db.rollback()
                result.failed_invoices.append(inv_id)
                log.exception("sync failed for invoice %s: %s", inv_id, e)
                continue

            if res.created:
                result.new += 1
            else:
                result.updated += 1
            if res.transfer_id is not None:
                result.transfers_created += 1
            for err in res.errors:
                log.warning("invoice %s: %s", inv_id, err)

        set_state(db, tenant, watermark=window_end, last_run_at=self._clock())

        log.info(
            "sync complete: %s records, %s new, %s updated, %s failed",
            result.record_count,
            result.new,
            result.updated,
            len(result.failed_invoices),
        )
        return result
