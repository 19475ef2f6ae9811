import uuid
from decimal import Decimal

import pytest

from buildledger.common.exceptions import BadRequestError, DataIntegrityError
from buildledger.core.financials.validation import (
    detect_cost_decrease_issue,
    detect_cost_exceeds_contract_issue,
    detect_quote_price_cost_issue,
)
from buildledger.core.ledger.schemas import SplitIn
from buildledger.core.ledger.validation import normalize_splits, validate_split_total

D = Decimal


def test_percentage_splits_derive_amounts():
    a, b = uuid.uuid4(), uuid.uuid4()
    splits = normalize_splits(
        D("1000.00"),
        [SplitIn(project_id=a, split_percentage=D("60")), SplitIn(project_id=b, split_percentage=D("40"))],
    )

    assert [s.split_amount for s in splits] == [D("600.00"), D("400.00")]
    assert [s.project_id for s in splits] == [a, b]


def test_amount_splits_derive_percentages():
    splits = normalize_splits(
        D("1000.00"),
        [
            SplitIn(project_id=uuid.uuid4(), split_amount=D("250")),
            SplitIn(project_id=uuid.uuid4(), split_amount=D("750")),
        ],
    )
    assert [s.split_percentage for s in splits] == [D("25.0000"), D("75.0000")]


def test_rounding_remainder_lands_on_last_split():
    splits = normalize_splits(
        D("100.00"),
        [SplitIn(project_id=uuid.uuid4(), split_percentage=D("33.3333")) for _ in range(2)]
        + [SplitIn(project_id=uuid.uuid4(), split_percentage=D("33.3334"))],
    )

    assert sum(s.split_amount for s in splits) == D("100.00")
    assert splits[-1].split_amount == D("33.34")


def test_split_set_must_add_up_to_parent():
    with pytest.raises(DataIntegrityError):
        normalize_splits(
            D("1000.00"),
            [
                SplitIn(project_id=uuid.uuid4(), split_amount=D("600")),
                SplitIn(project_id=uuid.uuid4(), split_amount=D("300")),
            ],
        )


def test_split_total_within_tolerance_passes():
    validate_split_total(D("100.00"), [D("33.33"), D("33.33"), D("33.33")], tolerance=D("0.01"))


def test_duplicate_target_project_rejected():
    pid = uuid.uuid4()
    with pytest.raises(BadRequestError):
        normalize_splits(
            D("10"),
            [SplitIn(project_id=pid, split_amount=D("5")), SplitIn(project_id=pid, split_amount=D("5"))],
        )


def test_empty_split_set_rejected():
    with pytest.raises(BadRequestError):
        normalize_splits(D("10"), [])


def test_split_requires_amount_or_percentage():
    with pytest.raises(ValueError):
        SplitIn(project_id=uuid.uuid4())


def test_negative_split_amount_rejected():
    with pytest.raises(ValueError):
        SplitIn(project_id=uuid.uuid4(), split_amount=D("-500"))


def test_split_rounding_to_zero_rejected():
    with pytest.raises(BadRequestError):
        normalize_splits(
            D("0.01"),
            [
                SplitIn(project_id=uuid.uuid4(), split_percentage=D("99.9")),
                SplitIn(project_id=uuid.uuid4(), split_percentage=D("0.1")),
            ],
        )


def test_negative_parent_cannot_be_split():
    with pytest.raises(BadRequestError):
        normalize_splits(
            D("-1000"),
            [
                SplitIn(project_id=uuid.uuid4(), split_percentage=D("60")),
                SplitIn(project_id=uuid.uuid4(), split_percentage=D("40")),
            ],
        )


# ---------- Margin warnings ----------


def test_cost_decrease_warning():
    warning = detect_cost_decrease_issue(D("60000"), D("70000"), threshold=D("5"))
    assert warning is not None
    assert warning.code == "adjusted_cost_decrease"
    assert detect_cost_decrease_issue(D("68000"), D("70000"), threshold=D("5")) is None


def test_cost_near_contract_warning():
    assert detect_cost_exceeds_contract_issue(D("98000"), D("100000"), ratio=D("0.95")).code == (
        "cost_near_contract"
    )
    assert detect_cost_exceeds_contract_issue(D("70000"), D("100000"), ratio=D("0.95")) is None
    assert detect_cost_exceeds_contract_issue(D("70000"), D("0"), ratio=D("0.95")) is None


def test_quote_price_entered_as_cost_warning():
    suspicious = [(D("99"), D("100")), (D("99"), D("100")), (D("50"), D("100"))]
    assert detect_quote_price_cost_issue(suspicious, ratio=D("0.98")).code == "quote_cost_near_price"

    healthy = [(D("70"), D("100")), (D("99"), D("100")), (D("60"), D("100")), (D("65"), D("100"))]
    assert detect_quote_price_cost_issue(healthy, ratio=D("0.98")) is None
    assert detect_quote_price_cost_issue([(D("10"), None)], ratio=D("0.98")) is None
