from decimal import Decimal

import pytest

from buildledger.common.enums import LineItemCategory
from buildledger.common.events import subscribe, unsubscribe
from buildledger.common.exceptions import BadRequestError
from buildledger.core.financials.dispatcher import SNAPSHOT_EVENT
from buildledger.core.financials.service import FinancialsService
from buildledger.core.ledger.change_orders import ChangeOrderService
from buildledger.core.ledger.schemas import (
    ChangeOrderCreate,
    ChangeOrderLineItemIn,
    ChangeOrderUpdate,
)
from buildledger.tests.factories import make_approved_estimate, make_project

D = Decimal


def _change_order(client_amount="5000", cost_impact="3000", **kwargs) -> ChangeOrderCreate:
    return ChangeOrderCreate(
        description="Add covered porch",
        client_amount=D(client_amount),
        cost_impact=D(cost_impact),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_draft_change_order_has_no_effect(db_session):
    project = await make_project(db_session)
    await make_approved_estimate(db_session, project.id)

    change_order = await ChangeOrderService().create(db_session, project.id, _change_order())

    assert change_order.status == "draft"
    assert change_order.margin_impact == D("2000.00")
    assert change_order.change_order_number == "CO-001"
    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.contracted_amount == D("100000")


@pytest.mark.asyncio
async def test_approved_change_order_adjusts_contract_and_margin(db_session):
    project = await make_project(db_session)
    await make_approved_estimate(db_session, project.id)
    service = ChangeOrderService()
    change_order = await service.create(db_session, project.id, _change_order())

    approved = await service.update(
        db_session, project.id, change_order.id, ChangeOrderUpdate(action="approve")
    )

    assert approved.approved_at is not None
    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.contracted_amount == D("105000")
    assert snapshot.change_order_revenue == D("5000")
    assert snapshot.change_order_cost == D("3000")
    assert snapshot.change_order_margin == D("2000")
    assert snapshot.projected_margin == D("32000")


@pytest.mark.asyncio
async def test_line_items_set_change_order_amounts(db_session):
    project = await make_project(db_session)
    change_order = await ChangeOrderService().create(
        db_session,
        project.id,
        _change_order(
            line_items=[
                ChangeOrderLineItemIn(
                    category=LineItemCategory.MATERIALS,
                    description="Decking",
                    quantity=D("100"),
                    cost_per_unit=D("12"),
                    price_per_unit=D("18"),
                ),
                ChangeOrderLineItemIn(
                    description="Railing", cost_per_unit=D("800"), price_per_unit=D("1000")
                ),
            ]
        ),
    )

    assert change_order.client_amount == D("2800.00")
    assert change_order.cost_impact == D("2000.00")
    assert change_order.margin_impact == D("800.00")


@pytest.mark.asyncio
async def test_contingency_funded_change_order_draws_contingency(db_session):
    project = await make_project(db_session)
    await make_approved_estimate(db_session, project.id, contingency_percent=D("10"))
    service = ChangeOrderService()
    change_order = await service.create(
        db_session, project.id, _change_order("4000", "4000", includes_contingency=True)
    )
    await service.update(db_session, project.id, change_order.id, ChangeOrderUpdate(action="approve"))

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.contingency_amount == D("10000")
    assert snapshot.contingency_used == D("4000")
    assert snapshot.contingency_remaining == D("6000")


@pytest.mark.asyncio
async def test_rejected_and_deleted_change_orders_excluded(db_session):
    project = await make_project(db_session)
    await make_approved_estimate(db_session, project.id)
    service = ChangeOrderService()

    rejected = await service.create(db_session, project.id, _change_order())
    await service.update(db_session, project.id, rejected.id, ChangeOrderUpdate(action="reject"))

    approved = await service.create(db_session, project.id, _change_order())
    await service.update(db_session, project.id, approved.id, ChangeOrderUpdate(action="approve"))
    await service.delete(db_session, project.id, approved.id)

    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.contracted_amount == D("100000")
    assert snapshot.change_order_revenue == D("0")


@pytest.mark.asyncio
async def test_approved_change_order_is_locked(db_session):
    project = await make_project(db_session)
    service = ChangeOrderService()
    change_order = await service.create(db_session, project.id, _change_order())
    await service.update(db_session, project.id, change_order.id, ChangeOrderUpdate(action="submit"))
    await service.update(db_session, project.id, change_order.id, ChangeOrderUpdate(action="approve"))

    with pytest.raises(BadRequestError):
        await service.update(
            db_session, project.id, change_order.id, ChangeOrderUpdate(client_amount=D("1"))
        )
    with pytest.raises(BadRequestError):
        await service.update(
            db_session, project.id, change_order.id, ChangeOrderUpdate(action="reject")
        )


@pytest.mark.asyncio
async def test_line_item_changes_recompute(db_session):
    project = await make_project(db_session)
    await make_approved_estimate(db_session, project.id)
    service = ChangeOrderService()
    change_order = await service.create(
        db_session,
        project.id,
        _change_order(
            line_items=[
                ChangeOrderLineItemIn(
                    description="Decking", quantity=D("100"), cost_per_unit=D("12"), price_per_unit=D("18")
                )
            ]
        ),
    )
    received = []

    async def handler(project_id, event, data):
        received.append(data["trigger"])

    subscribe(SNAPSHOT_EVENT, handler)
    try:
        railing = await service.add_line(
            db_session,
            project.id,
            change_order.id,
            ChangeOrderLineItemIn(description="Railing", cost_per_unit=D("800"), price_per_unit=D("1000")),
        )
    finally:
        unsubscribe(SNAPSHOT_EVENT, handler)

    assert received == ["change_order_line_items"]
    assert change_order.client_amount == D("2800.00")
    assert change_order.cost_impact == D("2000.00")

    await service.delete_line(db_session, project.id, change_order.id, railing.id)
    assert change_order.client_amount == D("1800.00")
    assert change_order.margin_impact == D("600.00")

    await service.update(db_session, project.id, change_order.id, ChangeOrderUpdate(action="approve"))
    snapshot = await FinancialsService().get_snapshot(db_session, project.id)
    assert snapshot.contracted_amount == D("101800")
    assert snapshot.change_order_cost == D("1200")

    with pytest.raises(BadRequestError):
        await service.add_line(
            db_session, project.id, change_order.id, ChangeOrderLineItemIn(description="Late extra")
        )
    (decking,) = await service.lines(db_session, change_order.id)
    with pytest.raises(BadRequestError):
        await service.delete_line(db_session, project.id, change_order.id, decking.id)
