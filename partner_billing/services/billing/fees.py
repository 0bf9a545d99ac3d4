"""Partner fee ledger services."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import HTTPException
from sqlalchemy.orm import Session

from partner_billing.models.billing import PartnerFee
from partner_billing.models.partner import Partner
from partner_billing.schemas.billing import FeeCreate, FeeRead, FeeSummary
from partner_billing.services.common import (
    apply_ordering,
    apply_pagination,
    as_utc,
    coerce_uuid,
    get_or_404,
    round_money,
)
from partner_billing.services.response import ListResponseMixin


class Fees(ListResponseMixin):
    @staticmethod
    def record(db: Session, partner_id: str, payload: FeeCreate) -> PartnerFee:
        partner = get_or_404(db, Partner, partner_id, detail="Partner not found")
        data = payload.model_dump(exclude_none=True)
        if "created_at" in data:
            data["created_at"] = as_utc(data["created_at"])
        fee = PartnerFee(partner_id=partner.id, settled=False, **data)
        db.add(fee)
        db.commit()
        db.refresh(fee)
        return fee

    @staticmethod
    def list(
        db: Session,
        partner_id: str,
        settled: bool | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = db.query(PartnerFee).filter(PartnerFee.partner_id == coerce_uuid(partner_id))
        if settled is not None:
            query = query.filter(PartnerFee.settled.is_(settled))
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {"created_at": PartnerFee.created_at, "value": PartnerFee.value},
        )
        return apply_pagination(query, limit, offset).all()

    @staticmethod
    def unsettled_in_window(
        db: Session,
        partner_id,
        start: datetime,
        end: datetime,
        for_update: bool = False,
    ) -> list[PartnerFee]:
        """Return unsettled fees of a partner created within ``[start, end]``.

        Both bounds are inclusive. An empty result means the partner has
        nothing to invoice for this window. ``for_update`` row-locks the fees
        until the caller's transaction ends.
        """
        query = (
            db.query(PartnerFee)
            .filter(PartnerFee.partner_id == coerce_uuid(partner_id))
            .filter(PartnerFee.settled.is_(False))
            .filter(PartnerFee.created_at >= as_utc(start))
            .filter(PartnerFee.created_at <= as_utc(end))
            .order_by(PartnerFee.created_at.asc())
        )
        if for_update:
            query = query.with_for_update()
        return query.all()

    @staticmethod
    def summary(db: Session, partner_id: str, start: datetime, end: datetime) -> FeeSummary:
        start = as_utc(start)
        end = as_utc(end)
        if start > end:
            raise HTTPException(status_code=400, detail="start must not be after end")
        partner = get_or_404(db, Partner, partner_id, detail="Partner not found")
        items = (
            db.query(PartnerFee)
            .filter(PartnerFee.partner_id == partner.id)
            .filter(PartnerFee.created_at >= start)
            .filter(PartnerFee.created_at <= end)
            .order_by(PartnerFee.created_at.desc())
            .all()
        )
        total_base = sum((fee.order_base_value or Decimal("0") for fee in items), Decimal("0"))
        total_fees = sum((fee.value or Decimal("0") for fee in items), Decimal("0"))
        weighted = sum(
            (
                (fee.fee_percentage or Decimal("0")) * (fee.order_base_value or Decimal("0"))
                for fee in items
            ),
            Decimal("0"),
        )
        average = weighted / total_base if total_base > 0 else Decimal("0")
        return FeeSummary(
            total_orders=len(items),
            total_base_value=round_money(total_base),
            total_fees=round_money(total_fees),
            average_fee_percentage=round_money(average),
            start_date=start,
            end_date=end,
            fees=[FeeRead.model_validate(fee) for fee in items],
        )
