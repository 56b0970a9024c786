import pytest

from movehub.models.enums import OrderServiceStatus as S, OrderStatus
from movehub.services.order_status import check_order_status, derive_order_status

from conftest import make_order


@pytest.mark.parametrize(
    "statuses,expected",
    [
        ([], OrderStatus.pending),
        ([S.pending], OrderStatus.pending),
        ([S.cancelled, S.cancelled], OrderStatus.cancelled),
        ([S.completed, S.completed], OrderStatus.completed),
        ([S.completed, S.offer_sent], OrderStatus.partially_done),
        ([S.completed, S.cancelled], OrderStatus.partially_done),
        ([S.completed, S.pending], OrderStatus.pending),
        ([S.in_progress, S.offer_sent], OrderStatus.in_progress),
        ([S.offer_rejected, S.offer_sent], OrderStatus.offer_rejected),
        ([S.offer_rejected, S.offer_accepted], OrderStatus.offer_accepted),
        ([S.offer_rejected, S.in_progress], OrderStatus.in_progress),
        ([S.offer_accepted, S.offer_sent], OrderStatus.offer_accepted),
        ([S.offer_sent, S.assigned], OrderStatus.offer_sent),
        ([S.assigned, S.pending], OrderStatus.assigned),
        ([S.cancelled, S.assigned], OrderStatus.assigned),
    ],
)
def test_precedence(statuses, expected):
    assert derive_order_status(statuses) == expected


def test_completed_with_rejected_line_is_not_partially_done():
    # A rejected line blocks partially_done and nothing is further along than it
    assert derive_order_status([S.completed, S.offer_rejected]) == OrderStatus.offer_rejected


def test_accepts_raw_strings():
    assert derive_order_status(["offer_sent", "assigned"]) == OrderStatus.offer_sent


def test_order_status_is_cached_on_create(db, world):
    order = make_order(db, world, services=[world.moving, world.cleaning])
    assert order.status == OrderStatus.assigned
    assert check_order_status(order)

    unassigned = make_order(db, world, assign=False)
    assert unassigned.status == OrderStatus.pending
    assert check_order_status(unassigned)
