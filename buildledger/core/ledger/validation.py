"""Write-time integrity rules and the read-only integrity audit.

Conditions the financial engine cannot resolve on its own are rejected when a
write would create them instead of being silently tie-broken at recompute time:

* a split set that does not add up to its parent amount, or a split with no positive share
* a second current-version estimate on a project, or a current version older than the latest
* two accepted quotes covering the same estimate line item
"""

import uuid
from collections import defaultdict
from decimal import Decimal

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import QuoteStatus
from buildledger.common.exceptions import BadRequestError, DataIntegrityError
from buildledger.common.logging import get_logger
from buildledger.common.money import HUNDRED, ZERO, dsum, to_money
from buildledger.config import settings
from buildledger.core.ledger.schemas import SplitIn
from buildledger.db.models.estimate import Estimate, EstimateLineItem
from buildledger.db.models.expense import Expense, ExpenseSplit
from buildledger.db.models.quote import Quote, QuoteLineItem
from buildledger.db.models.revenue import ProjectRevenue, RevenueSplit

logger = get_logger("ledger.validation")

PERCENT_PRECISION = Decimal("0.0001")


class NormalizedSplit(BaseModel):
    project_id: uuid.UUID
    split_amount: Decimal
    split_percentage: Decimal
    notes: str | None = None


def validate_split_total(
    parent_amount: Decimal, split_amounts: list[Decimal], tolerance: Decimal | None = None
) -> None:
    tolerance = tolerance if tolerance is not None else settings.SPLIT_TOLERANCE
    total = dsum(split_amounts)
    diff = abs(total - parent_amount)
    if diff > tolerance:
        raise DataIntegrityError(
            f"Split total (${total:,.2f}) must equal the parent amount (${parent_amount:,.2f}). "
            f"Difference: ${diff:,.2f}"
        )


def normalize_splits(parent_amount: Decimal, splits: list[SplitIn]) -> list[NormalizedSplit]:
    """Fill in whichever of amount / percentage each split omits.

    When every split is given as a percentage and they add up to 100, the cent
    left over by rounding is assigned to the last split so the set sums exactly.
    """
    if not splits:
        raise BadRequestError("At least one split is required")

    project_ids = [s.project_id for s in splits]
    if len(set(project_ids)) != len(project_ids):
        raise BadRequestError("Each project may appear only once in a split set")

    normalized = []
    for split in splits:
        if split.split_amount is not None:
            amount = to_money(split.split_amount)
            pct = (amount / parent_amount * HUNDRED) if parent_amount else ZERO
        else:
            pct = split.split_percentage
            amount = to_money(parent_amount * pct / HUNDRED)
        normalized.append(
            NormalizedSplit(
                project_id=split.project_id,
                split_amount=amount,
                split_percentage=pct.quantize(PERCENT_PRECISION),
                notes=split.notes,
            )
        )

    all_percentages = all(s.split_amount is None for s in splits)
    if all_percentages and dsum(s.split_percentage for s in splits) == HUNDRED:
        remainder = to_money(parent_amount) - dsum(n.split_amount for n in normalized)
        normalized[-1].split_amount += remainder

    for split in normalized:
        if split.split_amount <= ZERO:
            raise BadRequestError(
                f"Split to project {split.project_id} comes to ${split.split_amount:,.2f}; "
                "every split must carry a positive share of the parent amount"
            )

    validate_split_total(to_money(parent_amount), [n.split_amount for n in normalized])
    return normalized


async def ensure_no_other_current_version(
    db: AsyncSession, project_id: uuid.UUID, estimate_id: uuid.UUID | None = None
) -> None:
    query = select(Estimate.id, Estimate.estimate_number, Estimate.version_number).where(
        Estimate.project_id == project_id,
        Estimate.is_current_version.is_(True),
        Estimate.is_deleted.is_(False),
    )
    if estimate_id is not None:
        query = query.where(Estimate.id != estimate_id)

    existing = (await db.execute(query)).first()
    if existing:
        logger.info(
            "Rejected second current version for project %s (current: %s)",
            project_id,
            existing.id,
        )
        raise DataIntegrityError(
            f"Estimate {existing.estimate_number} v{existing.version_number} is already the "
            "current version for this project. Create a new version instead."
        )


async def ensure_latest_version(db: AsyncSession, estimate: Estimate) -> None:
    latest = (
        await db.execute(
            select(func.max(Estimate.version_number)).where(
                Estimate.project_id == estimate.project_id,
                Estimate.is_deleted.is_(False),
            )
        )
    ).scalar()
    if latest is not None and estimate.version_number < latest:
        raise DataIntegrityError(
            f"Only the most recent estimate version (v{latest}) can be the current version"
        )


async def ensure_quote_exclusive(
    db: AsyncSession,
    quote_id: uuid.UUID,
    estimate_line_item_ids: list[uuid.UUID],
) -> None:
    """Reject if another accepted quote already covers any of the given estimate lines."""
    ids = [i for i in estimate_line_item_ids if i is not None]
    if not ids:
        return

    result = await db.execute(
        select(Quote.quote_number, QuoteLineItem.estimate_line_item_id)
        .select_from(QuoteLineItem)
        .join(Quote, Quote.id == QuoteLineItem.quote_id)
        .where(
            QuoteLineItem.estimate_line_item_id.in_(ids),
            QuoteLineItem.is_deleted.is_(False),
            Quote.id != quote_id,
            Quote.status == QuoteStatus.ACCEPTED.value,
            Quote.is_deleted.is_(False),
        )
    )
    conflicts = result.all()
    if conflicts:
        numbers = ", ".join(sorted({c.quote_number for c in conflicts}))
        logger.info("Rejected competing quote acceptance for quote %s (conflicts: %s)", quote_id, numbers)
        raise DataIntegrityError(
            f"Accepted quote(s) {numbers} already cover {len(conflicts)} of these estimate line "
            "items. Reject the existing quote before accepting another for the same scope."
        )


# ---------- Audit ----------


class IntegrityIssue(BaseModel):
    code: str
    message: str
    record_ids: list[uuid.UUID]


class IntegrityReport(BaseModel):
    project_id: uuid.UUID
    ok: bool
    issues: list[IntegrityIssue]


async def _split_mismatches(
    db: AsyncSession, project_id: uuid.UUID, parent, split, fk: str, code: str, label: str
) -> list[IntegrityIssue]:
    """Split parents touching ``project_id`` whose split rows do not sum to the parent."""
    touching = select(getattr(split, fk)).where(
        split.project_id == project_id, split.is_deleted.is_(False)
    )
    parents = (
        await db.execute(
            select(parent).where(
                parent.is_deleted.is_(False),
                (parent.project_id == project_id) | parent.id.in_(touching),
            )
        )
    ).scalars().all()

    issues = []
    for row in parents:
        amounts = (
            await db.execute(
                select(split.split_amount).where(
                    getattr(split, fk) == row.id, split.is_deleted.is_(False)
                )
            )
        ).scalars().all()
        if row.is_split:
            total = dsum(amounts)
            if abs(total - row.amount) > settings.SPLIT_TOLERANCE:
                issues.append(
                    IntegrityIssue(
                        code=code,
                        message=f"{label} splits total ${total:,.2f} but the {label.lower()} is ${row.amount:,.2f}",
                        record_ids=[row.id],
                    )
                )
        elif amounts:
            issues.append(
                IntegrityIssue(
                    code=f"{code}_orphaned",
                    message=f"{label} has split rows but is not marked as split; the splits are ignored",
                    record_ids=[row.id],
                )
            )
    return issues


async def audit_project_integrity(db: AsyncSession, project_id: uuid.UUID) -> IntegrityReport:
    issues: list[IntegrityIssue] = []

    current = (
        await db.execute(
            select(Estimate.id, Estimate.version_number).where(
                Estimate.project_id == project_id,
                Estimate.is_current_version.is_(True),
                Estimate.is_deleted.is_(False),
            )
        )
    ).all()
    if len(current) > 1:
        issues.append(
            IntegrityIssue(
                code="multiple_current_estimates",
                message=f"{len(current)} estimates are marked as the current version",
                record_ids=[row.id for row in current],
            )
        )
    latest = (
        await db.execute(
            select(func.max(Estimate.version_number)).where(
                Estimate.project_id == project_id, Estimate.is_deleted.is_(False)
            )
        )
    ).scalar()
    stale = [row for row in current if row.version_number < latest]
    if stale:
        issues.append(
            IntegrityIssue(
                code="stale_current_estimate",
                message=f"The current estimate version is older than the latest version (v{latest})",
                record_ids=[row.id for row in stale],
            )
        )

    accepted = await db.execute(
        select(QuoteLineItem.estimate_line_item_id, Quote.id)
        .join(Quote, Quote.id == QuoteLineItem.quote_id)
        .join(EstimateLineItem, EstimateLineItem.id == QuoteLineItem.estimate_line_item_id)
        .where(
            Quote.project_id == project_id,
            Quote.status == QuoteStatus.ACCEPTED.value,
            Quote.is_deleted.is_(False),
            QuoteLineItem.is_deleted.is_(False),
        )
    )
    quotes_by_line: dict[uuid.UUID, set[uuid.UUID]] = defaultdict(set)
    for line_id, quote_id in accepted.all():
        quotes_by_line[line_id].add(quote_id)
    for line_id, quote_ids in quotes_by_line.items():
        if len(quote_ids) > 1:
            issues.append(
                IntegrityIssue(
                    code="competing_accepted_quotes",
                    message=f"{len(quote_ids)} accepted quotes cover estimate line item {line_id}",
                    record_ids=[line_id, *sorted(quote_ids, key=str)],
                )
            )

    issues += await _split_mismatches(
        db, project_id, Expense, ExpenseSplit, "expense_id", "expense_split_mismatch", "Expense"
    )
    issues += await _split_mismatches(
        db, project_id, ProjectRevenue, RevenueSplit, "revenue_id", "revenue_split_mismatch", "Revenue"
    )

    return IntegrityReport(project_id=project_id, ok=not issues, issues=issues)
