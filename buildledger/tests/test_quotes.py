from decimal import Decimal

import pytest

from buildledger.common.enums import LineItemCategory
from buildledger.common.exceptions import BadRequestError, DataIntegrityError
from buildledger.core.financials.aggregator import line_input
from buildledger.core.financials.cost_resolver import CostResolver
from buildledger.core.financials.service import FinancialsService
from buildledger.core.ledger.estimates import EstimateService
from buildledger.core.ledger.quotes import QuoteService
from buildledger.core.ledger.schemas import QuoteCreate, QuoteLineItemIn, QuoteUpdate
from buildledger.core.ledger.validation import audit_project_integrity
from buildledger.db.models.quote import Quote, QuoteLineItem
from buildledger.tests.factories import line, make_approved_estimate, make_project

D = Decimal


async def _project_with_sub_line(db, number="P-001"):
    project = await make_project(db, number)
    estimate = await make_approved_estimate(
        db,
        project.id,
        line_items=[
            line(LineItemCategory.SUBCONTRACTORS, "20000", "28000"),
            line(LineItemCategory.MATERIALS, "50000", "72000"),
        ],
    )
    sub_line, _ = await EstimateService().lines(db, estimate.id)
    return project, estimate, sub_line


def _quote_for(estimate_line_id, cost: str, quantity: str = "1") -> QuoteCreate:
    return QuoteCreate(
        line_items=[
            QuoteLineItemIn(
                estimate_line_item_id=estimate_line_id,
                description="Framing sub",
                quantity=D(quantity),
                cost_per_unit=D(cost),
            )
        ]
    )


@pytest.mark.asyncio
async def test_quote_total_derived_from_lines(db_session):
    project, _, sub_line = await _project_with_sub_line(db_session)
    quote = await QuoteService().create(db_session, project.id, _quote_for(sub_line.id, "7500", "2"))

    assert quote.total_amount == D("15000.00")
    assert quote.status == "pending"
    assert quote.quote_number == "Q-0001"


@pytest.mark.asyncio
async def test_pending_quote_does_not_change_costs(db_session):
    project, _, sub_line = await _project_with_sub_line(db_session)
    await QuoteService().create(db_session, project.id, _quote_for(sub_line.id, "15000"))

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.adjusted_est_costs == D("70000")
    assert snapshot.total_accepted_quotes == D("0")


@pytest.mark.asyncio
async def test_accept_then_reject_restores_estimate_cost(db_session):
    project, _, sub_line = await _project_with_sub_line(db_session)
    service = QuoteService()
    quote = await service.create(db_session, project.id, _quote_for(sub_line.id, "15000"))

    accepted = await service.update(db_session, project.id, quote.id, QuoteUpdate(action="accept"))
    assert accepted.accepted_at is not None
    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.adjusted_est_costs == D("65000")

    rejected = await service.update(db_session, project.id, quote.id, QuoteUpdate(action="reject"))
    assert rejected.accepted_at is None
    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.adjusted_est_costs == D("70000")
    assert snapshot.projected_margin == D("30000")


@pytest.mark.asyncio
async def test_competing_acceptance_rejected(db_session):
    project, _, sub_line = await _project_with_sub_line(db_session)
    service = QuoteService()
    first = await service.create(db_session, project.id, _quote_for(sub_line.id, "15000"))
    second = await service.create(db_session, project.id, _quote_for(sub_line.id, "14000"))
    await service.update(db_session, project.id, first.id, QuoteUpdate(action="accept"))

    with pytest.raises(DataIntegrityError):
        await service.update(db_session, project.id, second.id, QuoteUpdate(action="accept"))

    assert second.status == "pending"
    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.adjusted_est_costs == D("65000")


@pytest.mark.asyncio
async def test_adding_competing_line_to_accepted_quote_rejected(db_session):
    project, _, sub_line = await _project_with_sub_line(db_session)
    service = QuoteService()
    first = await service.create(db_session, project.id, _quote_for(sub_line.id, "15000"))
    await service.update(db_session, project.id, first.id, QuoteUpdate(action="accept"))

    other = await service.create(db_session, project.id, QuoteCreate(total_amount=D("100")))
    await service.update(db_session, project.id, other.id, QuoteUpdate(action="accept"))

    with pytest.raises(DataIntegrityError):
        await service.add_line(
            db_session,
            project.id,
            other.id,
            QuoteLineItemIn(estimate_line_item_id=sub_line.id, description="Overlap", cost_per_unit=D("1")),
        )


@pytest.mark.asyncio
async def test_quote_line_must_reference_own_project(db_session):
    _, _, foreign_line = await _project_with_sub_line(db_session, "P-OTHER")
    project = await make_project(db_session, "P-002")

    with pytest.raises(BadRequestError):
        await QuoteService().create(db_session, project.id, _quote_for(foreign_line.id, "100"))


@pytest.mark.asyncio
async def test_expired_quote_cannot_be_accepted(db_session):
    project, _, sub_line = await _project_with_sub_line(db_session)
    service = QuoteService()
    quote = await service.create(db_session, project.id, _quote_for(sub_line.id, "15000"))
    await service.update(db_session, project.id, quote.id, QuoteUpdate(action="expire"))

    with pytest.raises(BadRequestError):
        await service.update(db_session, project.id, quote.id, QuoteUpdate(action="accept"))


@pytest.mark.asyncio
async def test_deleting_accepted_quote_line_recomputes(db_session):
    project, _, sub_line = await _project_with_sub_line(db_session)
    service = QuoteService()
    quote = await service.create(db_session, project.id, _quote_for(sub_line.id, "15000"))
    await service.update(db_session, project.id, quote.id, QuoteUpdate(action="accept"))
    (quote_line,) = await service.lines(db_session, quote.id)

    await service.delete_line(db_session, project.id, quote.id, quote_line.id)

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.adjusted_est_costs == D("70000")


@pytest.mark.asyncio
async def test_audit_reports_legacy_competing_quotes(db_session):
    project, _, sub_line = await _project_with_sub_line(db_session)

    # Imported rows bypass the write-time check
    for number in ("Q-A", "Q-B"):
        quote = Quote(project_id=project.id, quote_number=number, status="accepted", total_amount=D("1"))
        db_session.add(quote)
        await db_session.flush()
        db_session.add(
            QuoteLineItem(
                quote_id=quote.id,
                estimate_line_item_id=sub_line.id,
                description=number,
                cost_per_unit=D("1"),
                total_cost=D("1"),
            )
        )
    await db_session.flush()

    report = await audit_project_integrity(db_session, project.id)
    assert report.ok is False
    assert [i.code for i in report.issues] == ["competing_accepted_quotes"]


@pytest.mark.asyncio
async def test_lines_of_one_quote_on_same_estimate_line_are_summed(db_session):
    project, estimate, sub_line = await _project_with_sub_line(db_session)
    service = QuoteService()
    quote = await service.create(
        db_session,
        project.id,
        QuoteCreate(
            line_items=[
                QuoteLineItemIn(
                    estimate_line_item_id=sub_line.id, description="Framing labor", cost_per_unit=D("9000")
                ),
                QuoteLineItemIn(
                    estimate_line_item_id=sub_line.id, description="Framing material", cost_per_unit=D("6000")
                ),
            ]
        ),
    )
    assert quote.total_amount == D("15000.00")

    await service.update(db_session, project.id, quote.id, QuoteUpdate(action="accept"))

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.adjusted_est_costs == D("65000")

    resolved = await CostResolver().resolve_line(db_session, project.id, line_input(sub_line))
    assert resolved.source == "quote"
    assert resolved.adjusted_cost == D("15000")
    assert resolved.original_cost == D("20000")

    report = await audit_project_integrity(db_session, project.id)
    assert report.ok is True
