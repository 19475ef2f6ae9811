import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy.exc import DBAPIError

from buildledger.common.enums import LedgerTable, LineItemCategory
from buildledger.common.events import subscribe, unsubscribe
from buildledger.common.exceptions import NotFoundError, RecomputeError, RecomputeTimeoutError
from buildledger.core.financials.aggregator import Aggregator
from buildledger.core.financials.dispatcher import SNAPSHOT_EVENT, RecomputeDispatcher
from buildledger.core.financials.service import FinancialsService, snapshot_from_project
from buildledger.core.ledger.estimates import EstimateService
from buildledger.core.ledger.expenses import ExpenseService
from buildledger.core.ledger.quotes import QuoteService
from buildledger.core.ledger.schemas import QuoteCreate, QuoteLineItemIn, QuoteUpdate, SplitIn
from buildledger.db.models.project import Project
from buildledger.tests.factories import expense, line, make_approved_estimate, make_project

D = Decimal


class SlowAggregator(Aggregator):
    async def aggregate(self, *args, **kwargs):
        await asyncio.sleep(5)


class BrokenAggregator(Aggregator):
    async def aggregate(self, *args, **kwargs):
        raise ZeroDivisionError("boom")


class DriverError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


class CancelledStatementAggregator(Aggregator):
    def __init__(self, sqlstate="57014"):
        self.sqlstate = sqlstate

    async def aggregate(self, *args, **kwargs):
        raise DBAPIError("SELECT ...", {}, DriverError(self.sqlstate))


async def _estimate_with_lines(db, project_id):
    lines = [
        line(LineItemCategory.SUBCONTRACTORS, "20000", "28000"),
        line(LineItemCategory.MATERIALS, "50000", "72000"),
    ]
    estimate = await make_approved_estimate(db, project_id, "0", "0", line_items=lines)
    return estimate, await EstimateService().lines(db, estimate.id)


async def _accept_quote(db, project_id, estimate_line_id, cost: str):
    quotes = QuoteService()
    quote = await quotes.create(
        db,
        project_id,
        QuoteCreate(
            line_items=[
                QuoteLineItemIn(
                    estimate_line_item_id=estimate_line_id,
                    description="Quoted scope",
                    cost_per_unit=D(cost),
                )
            ]
        ),
    )
    return await quotes.update(db, project_id, quote.id, QuoteUpdate(action="accept"))


@pytest.mark.asyncio
async def test_header_only_estimate_margins(db_session):
    project = await make_project(db_session)
    await make_approved_estimate(db_session, project.id, "100000", "70000")

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.contracted_amount == D("100000")
    assert snapshot.original_est_costs == D("70000")
    assert snapshot.original_margin == D("30000")
    assert snapshot.projected_margin == D("30000")
    assert snapshot.has_approved_estimate is True


@pytest.mark.asyncio
async def test_accepted_quote_replaces_subcontractor_cost(db_session):
    project = await make_project(db_session)
    estimate, (sub_line, _) = await _estimate_with_lines(db_session, project.id)
    assert estimate.total_amount == D("100000")
    assert estimate.total_cost == D("70000")

    await _accept_quote(db_session, project.id, sub_line.id, "15000")

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.original_est_costs == D("70000")
    assert snapshot.adjusted_est_costs == D("65000")
    assert snapshot.projected_margin == D("35000")
    assert snapshot.total_accepted_quotes == D("15000")


@pytest.mark.asyncio
async def test_accepted_quote_on_internal_labor_is_ignored(db_session):
    project = await make_project(db_session)
    estimate = await make_approved_estimate(
        db_session,
        project.id,
        line_items=[line(LineItemCategory.LABOR_INTERNAL, "75", "93.75", quantity="200")],
    )
    (labor_line,) = await EstimateService().lines(db_session, estimate.id)

    await _accept_quote(db_session, project.id, labor_line.id, "9000")

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.adjusted_est_costs == D("15000")
    assert snapshot.projected_margin == D("3750")


@pytest.mark.asyncio
async def test_recompute_is_idempotent(db_session):
    project = await make_project(db_session)
    _, (sub_line, _) = await _estimate_with_lines(db_session, project.id)
    await _accept_quote(db_session, project.id, sub_line.id, "15000")
    await ExpenseService().create(db_session, expense(project.id, "1234.56"))

    service = FinancialsService()
    first = await service.recompute(db_session, project.id)
    second = await service.recompute(db_session, project.id)

    assert first == second
    assert snapshot_from_project(await service.get_project(db_session, project.id)) == second


@pytest.mark.asyncio
async def test_calculate_does_not_write(db_session):
    project = await make_project(db_session)
    await make_approved_estimate(db_session, project.id)
    project.contracted_amount = D("1")

    snapshot = await FinancialsService().calculate(db_session, project.id)

    assert snapshot.contracted_amount == D("100000.00")
    assert project.contracted_amount == D("1")


@pytest.mark.asyncio
async def test_project_without_approved_estimate_is_neutral(db_session):
    project = await make_project(db_session)
    await ExpenseService().create(db_session, expense(project.id, "500"))

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.has_approved_estimate is False
    assert snapshot.contracted_amount == D("0")
    assert snapshot.margin_percentage == D("0")
    assert snapshot.total_expenses == D("500")


@pytest.mark.asyncio
async def test_recompute_timeout_raises_503(db_session):
    project = await make_project(db_session)
    service = FinancialsService(aggregator=SlowAggregator(), timeout=0.05, cancel_grace=0)

    with pytest.raises(RecomputeTimeoutError) as exc_info:
        await service.recompute(db_session, project.id)

    assert exc_info.value.status_code == 503
    assert exc_info.value.headers == {"Retry-After": "1"}
    assert project.financials_updated_at is None


@pytest.mark.asyncio
async def test_server_cancelled_statement_raises_503(db_session):
    project = await make_project(db_session)
    service = FinancialsService(aggregator=CancelledStatementAggregator())

    with pytest.raises(RecomputeTimeoutError) as exc_info:
        await service.recompute(db_session, project.id)

    assert exc_info.value.status_code == 503
    assert isinstance(exc_info.value.__cause__, DBAPIError)
    assert project.financials_updated_at is None


@pytest.mark.asyncio
async def test_other_database_errors_raise_500(db_session):
    project = await make_project(db_session)
    service = FinancialsService(aggregator=CancelledStatementAggregator(sqlstate="23505"))

    with pytest.raises(RecomputeError) as exc_info:
        await service.recompute(db_session, project.id)

    assert exc_info.value.status_code == 500
    assert "DBAPIError" in exc_info.value.detail


@pytest.mark.asyncio
async def test_tiny_contract_margin_percentage_fits_column(db_session):
    project = await make_project(db_session)
    await make_approved_estimate(db_session, project.id, total_amount="0.01", total_cost="0")
    await ExpenseService().create(db_session, expense(project.id, "100000"))

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.margin_percentage == D("-999999900.00")

    column = Project.__table__.c.margin_percentage.type
    integer_digits = len(str(abs(int(snapshot.margin_percentage))))
    assert integer_digits <= column.precision - column.scale


@pytest.mark.asyncio
async def test_recompute_failure_leaves_snapshot_untouched(db_session):
    project = await make_project(db_session)
    await make_approved_estimate(db_session, project.id)
    service = FinancialsService(aggregator=BrokenAggregator())

    with pytest.raises(RecomputeError) as exc_info:
        await service.recompute(db_session, project.id)

    assert exc_info.value.status_code == 500
    assert "ZeroDivisionError" in exc_info.value.detail
    assert project.contracted_amount == D("100000")


@pytest.mark.asyncio
async def test_recompute_unknown_project(db_session):
    with pytest.raises(NotFoundError):
        await FinancialsService().recompute(db_session, uuid.uuid4())


# ---------- Dispatcher ----------


@pytest.mark.asyncio
async def test_dispatcher_emits_snapshot_event(db_session):
    project = await make_project(db_session)
    received = []

    async def handler(project_id, event, data):
        received.append((project_id, event, data))

    subscribe(SNAPSHOT_EVENT, handler)
    try:
        await ExpenseService().create(db_session, expense(project.id, "250"))
    finally:
        unsubscribe(SNAPSHOT_EVENT, handler)

    assert len(received) == 1
    project_id, event, data = received[0]
    assert project_id == str(project.id)
    assert data["trigger"] == "expenses"
    assert D(data["snapshot"]["total_expenses"]) == D("250")


@pytest.mark.asyncio
async def test_dispatcher_resolves_every_split_target(db_session):
    project_a = await make_project(db_session, "P-A")
    project_b = await make_project(db_session, "P-B")
    expenses = ExpenseService()
    row = await expenses.create(db_session, expense(project_a.id, "1000"))

    splits = await expenses.set_splits(
        db_session,
        row.id,
        [
            SplitIn(project_id=project_a.id, split_percentage=D("60")),
            SplitIn(project_id=project_b.id, split_percentage=D("40")),
        ],
    )

    dispatcher = RecomputeDispatcher()
    assert await dispatcher.affected_projects(db_session, LedgerTable.EXPENSES, row) == {
        project_a.id,
        project_b.id,
    }
    assert await dispatcher.affected_projects(
        db_session, LedgerTable.EXPENSE_SPLITS, splits[1]
    ) == {project_a.id, project_b.id}

    snapshots = await dispatcher.notify(db_session, LedgerTable.EXPENSES, row)
    assert set(snapshots) == {project_a.id, project_b.id}
