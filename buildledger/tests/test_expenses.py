from decimal import Decimal

import pytest

from buildledger.common.exceptions import BadRequestError, DataIntegrityError, NotFoundError
from buildledger.core.financials.service import FinancialsService
from buildledger.core.ledger.expenses import ExpenseService, RevenueService
from buildledger.core.ledger.schemas import ExpenseUpdate, RevenueUpdate, SplitIn
from buildledger.tests.factories import expense, make_approved_estimate, make_project, revenue

D = Decimal


async def _two_projects(db):
    project_a = await make_project(db, "P-A")
    project_b = await make_project(db, "P-B")
    await make_approved_estimate(db, project_a.id)
    await make_approved_estimate(db, project_b.id)
    return project_a, project_b


async def _expenses_of(db, project_id) -> Decimal:
    return (await FinancialsService().get_snapshot(db, project_id)).total_expenses


@pytest.mark.asyncio
async def test_expense_reduces_current_margin(db_session):
    project = await make_project(db_session)
    await make_approved_estimate(db_session, project.id)

    await ExpenseService().create(db_session, expense(project.id, "25000"))

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.total_expenses == D("25000")
    assert snapshot.current_margin == D("75000")
    assert snapshot.margin_percentage == D("75.00")


@pytest.mark.asyncio
async def test_split_expense_allocated_without_double_count(db_session):
    project_a, project_b = await _two_projects(db_session)
    service = ExpenseService()
    row = await service.create(db_session, expense(project_a.id, "1000"))

    splits = await service.set_splits(
        db_session,
        row.id,
        [
            SplitIn(project_id=project_a.id, split_percentage=D("60")),
            SplitIn(project_id=project_b.id, split_percentage=D("40")),
        ],
    )

    assert row.is_split is True
    assert [s.split_amount for s in splits] == [D("600.00"), D("400.00")]
    assert await _expenses_of(db_session, project_a.id) == D("600")
    assert await _expenses_of(db_session, project_b.id) == D("400")


@pytest.mark.asyncio
async def test_resplit_recomputes_dropped_target(db_session):
    project_a, project_b = await _two_projects(db_session)
    service = ExpenseService()
    row = await service.create(db_session, expense(project_a.id, "1000"))
    await service.set_splits(
        db_session,
        row.id,
        [
            SplitIn(project_id=project_a.id, split_amount=D("500")),
            SplitIn(project_id=project_b.id, split_amount=D("500")),
        ],
    )

    await service.set_splits(db_session, row.id, [SplitIn(project_id=project_a.id, split_amount=D("1000"))])

    assert len(await service.splits(db_session, row.id)) == 1
    assert await _expenses_of(db_session, project_a.id) == D("1000")
    assert await _expenses_of(db_session, project_b.id) == D("0")


@pytest.mark.asyncio
async def test_clear_splits_returns_expense_to_owner(db_session):
    project_a, project_b = await _two_projects(db_session)
    service = ExpenseService()
    row = await service.create(db_session, expense(project_a.id, "1000"))
    await service.set_splits(
        db_session, row.id, [SplitIn(project_id=project_b.id, split_percentage=D("100"))]
    )
    assert await _expenses_of(db_session, project_a.id) == D("0")
    assert await _expenses_of(db_session, project_b.id) == D("1000")

    cleared = await service.clear_splits(db_session, row.id)

    assert cleared.is_split is False
    assert await _expenses_of(db_session, project_a.id) == D("1000")
    assert await _expenses_of(db_session, project_b.id) == D("0")


@pytest.mark.asyncio
async def test_mismatched_split_set_rejected(db_session):
    project_a, project_b = await _two_projects(db_session)
    service = ExpenseService()
    row = await service.create(db_session, expense(project_a.id, "1000"))

    with pytest.raises(DataIntegrityError):
        await service.set_splits(
            db_session,
            row.id,
            [
                SplitIn(project_id=project_a.id, split_amount=D("600")),
                SplitIn(project_id=project_b.id, split_amount=D("300")),
            ],
        )

    assert row.is_split is False
    assert await _expenses_of(db_session, project_a.id) == D("1000")


@pytest.mark.asyncio
async def test_split_amount_change_requires_resplit(db_session):
    project_a, project_b = await _two_projects(db_session)
    service = ExpenseService()
    row = await service.create(db_session, expense(project_a.id, "1000"))
    await service.set_splits(
        db_session,
        row.id,
        [
            SplitIn(project_id=project_a.id, split_percentage=D("50")),
            SplitIn(project_id=project_b.id, split_percentage=D("50")),
        ],
    )

    with pytest.raises(BadRequestError):
        await service.update(db_session, row.id, ExpenseUpdate(amount=D("1200")))

    updated = await service.update(db_session, row.id, ExpenseUpdate(description="Lumber drop"))
    assert updated.description == "Lumber drop"


@pytest.mark.asyncio
async def test_moving_expense_recomputes_both_projects(db_session):
    project_a, project_b = await _two_projects(db_session)
    service = ExpenseService()
    row = await service.create(db_session, expense(project_a.id, "750"))

    await service.update(db_session, row.id, ExpenseUpdate(project_id=project_b.id))

    assert await _expenses_of(db_session, project_a.id) == D("0")
    assert await _expenses_of(db_session, project_b.id) == D("750")


@pytest.mark.asyncio
async def test_deleted_expense_and_splits_excluded(db_session):
    project_a, project_b = await _two_projects(db_session)
    service = ExpenseService()
    row = await service.create(db_session, expense(project_a.id, "1000"))
    await service.set_splits(
        db_session,
        row.id,
        [
            SplitIn(project_id=project_a.id, split_percentage=D("60")),
            SplitIn(project_id=project_b.id, split_percentage=D("40")),
        ],
    )

    await service.delete(db_session, row.id)

    assert await _expenses_of(db_session, project_a.id) == D("0")
    assert await _expenses_of(db_session, project_b.id) == D("0")
    with pytest.raises(NotFoundError):
        await service.get(db_session, row.id)


@pytest.mark.asyncio
async def test_list_includes_split_allocations(db_session):
    project_a, project_b = await _two_projects(db_session)
    service = ExpenseService()
    shared = await service.create(db_session, expense(project_a.id, "1000"))
    own_b = await service.create(db_session, expense(project_b.id, "10"))
    await service.set_splits(
        db_session,
        shared.id,
        [
            SplitIn(project_id=project_a.id, split_percentage=D("60")),
            SplitIn(project_id=project_b.id, split_percentage=D("40")),
        ],
    )

    listed = await service.list_for_project(db_session, project_b.id)
    assert {row.id for row in listed} == {shared.id, own_b.id}


@pytest.mark.asyncio
async def test_split_revenue_sets_invoiced_and_actual_margin(db_session):
    project_a, project_b = await _two_projects(db_session)
    revenues = RevenueService()
    await ExpenseService().create(db_session, expense(project_a.id, "2000"))
    invoice = await revenues.create(db_session, revenue(project_a.id, "9000", invoice_number="INV-1"))

    await revenues.set_splits(
        db_session,
        invoice.id,
        [
            SplitIn(project_id=project_a.id, split_amount=D("6000")),
            SplitIn(project_id=project_b.id, split_amount=D("3000")),
        ],
    )

    snapshot_a = await FinancialsService().get_snapshot(db_session, project_a.id)
    snapshot_b = await FinancialsService().get_snapshot(db_session, project_b.id)
    assert snapshot_a.total_invoiced == D("6000")
    assert snapshot_a.actual_margin == D("4000")
    assert snapshot_b.total_invoiced == D("3000")
    assert snapshot_b.actual_margin == D("3000")


@pytest.mark.asyncio
async def test_revenue_update_recomputes(db_session):
    project = await make_project(db_session)
    revenues = RevenueService()
    invoice = await revenues.create(db_session, revenue(project.id, "5000"))

    await revenues.update(db_session, invoice.id, RevenueUpdate(amount=D("5500")))

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.total_invoiced == D("5500")
