from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from movehub.models.enums import OfferStatus, OrderServiceStatus, OrderStatus
from movehub.models.models import AuditLog, Offer
from movehub.services import offers, orders
from movehub.services.errors import ConflictError, StateError, ValidationError
from movehub.services.order_status import check_order_status
from movehub.services.transactions import atomic

from conftest import make_order, make_terms


def pending_count(db, order_service_id):
    return db.query(Offer).filter(
        Offer.order_service_id == order_service_id, Offer.status == OfferStatus.pending
    ).count()


def test_send_offer_creates_first_version(db, world):
    order = make_order(db, world)
    line = order.services[0]

    offer = offers.send_offer(db, line.id, make_terms(date=date(2026, 11, 2)), actor=world.company_admin)

    assert offer.version == 1
    assert offer.status == OfferStatus.pending
    assert offer.company_id == world.company.id
    assert offer.currency.value == "CHF"
    assert line.status == OrderServiceStatus.offer_sent
    assert order.status == OrderStatus.offer_sent
    assert check_order_status(order)


@pytest.mark.parametrize(
    "terms",
    [
        make_terms(rate=0),
        make_terms(rate=-5),
        make_terms(min_hours=0),
        make_terms(min_hours=10, max_hours=8),
        make_terms(currency="GBP"),
        make_terms(rate=float("nan")),
        make_terms(min_hours=float("nan")),
        make_terms(max_hours=float("inf")),
        make_terms(rate=float("inf"), min_hours=float("nan"), max_hours=float("inf")),
    ],
)
def test_send_offer_rejects_invalid_terms(db, world, terms):
    line = make_order(db, world).services[0]
    with pytest.raises(ValidationError):
        offers.send_offer(db, line.id, terms)
    assert pending_count(db, line.id) == 0
    assert line.status == OrderServiceStatus.assigned


def test_second_send_without_reject_conflicts(db, world):
    line = make_order(db, world).services[0]
    offers.send_offer(db, line.id, make_terms())

    with pytest.raises(ConflictError):
        offers.send_offer(db, line.id, make_terms(rate=90))

    assert pending_count(db, line.id) == 1


def test_reject_then_resend_increments_version(db, world):
    line = make_order(db, world).services[0]
    first = offers.send_offer(db, line.id, make_terms(rate=80))
    offers.reject_offer(db, first.id, reason="Too expensive", actor=world.client)

    second = offers.send_offer(db, line.id, make_terms(rate=70))

    db.refresh(first)
    assert second.version == 2
    assert first.status == OfferStatus.rejected
    assert first.hourly_rate == 80
    assert first.rejection_reason == "Too expensive"
    assert [o.version for o in offers.list_offers(db, line.id)] == [1, 2]


def test_modify_while_sent_supersedes_pending_version(db, world):
    line = make_order(db, world).services[0]
    first = offers.send_offer(db, line.id, make_terms(rate=80))

    second = offers.modify_offer(db, line.id, make_terms(rate=75), actor=world.company_admin)

    db.refresh(first)
    assert first.status == OfferStatus.cancelled
    assert first.hourly_rate == 80
    assert second.version == 2
    assert second.status == OfferStatus.pending
    assert pending_count(db, line.id) == 1
    assert line.status == OrderServiceStatus.offer_sent


def test_modify_after_rejection(db, world):
    line = make_order(db, world).services[0]
    first = offers.send_offer(db, line.id, make_terms())
    offers.reject_offer(db, first.id)

    second = offers.modify_offer(db, line.id, make_terms(rate=60))

    assert second.version == 2
    assert line.status == OrderServiceStatus.offer_sent


def test_modify_requires_an_offer_phase(db, world):
    line = make_order(db, world).services[0]
    with pytest.raises(StateError):
        offers.modify_offer(db, line.id, make_terms())


def test_accept_moves_service_and_order(db, world):
    order = make_order(db, world)
    line = order.services[0]
    offer = offers.send_offer(db, line.id, make_terms())

    offers.accept_offer(db, offer.id, actor=world.client)

    assert offer.status == OfferStatus.accepted
    assert offer.decided_at is not None
    assert line.status == OrderServiceStatus.offer_accepted
    assert order.status == OrderStatus.offer_accepted


def test_accepting_twice_is_a_state_error(db, world):
    line = make_order(db, world).services[0]
    offer = offers.send_offer(db, line.id, make_terms())
    offers.accept_offer(db, offer.id)

    with pytest.raises(StateError):
        offers.accept_offer(db, offer.id)
    with pytest.raises(StateError):
        offers.reject_offer(db, offer.id)


def test_cannot_send_after_acceptance(db, world):
    line = make_order(db, world).services[0]
    offer = offers.send_offer(db, line.id, make_terms())
    offers.accept_offer(db, offer.id)

    with pytest.raises(StateError):
        offers.send_offer(db, line.id, make_terms())


def test_cancel_offer_returns_line_to_assigned(db, world):
    order = make_order(db, world)
    line = order.services[0]
    offer = offers.send_offer(db, line.id, make_terms())

    offers.cancel_offer(db, offer.id, actor=world.company_admin)

    assert offer.status == OfferStatus.cancelled
    assert line.status == OrderServiceStatus.assigned
    assert order.status == OrderStatus.assigned
    # A fresh version can be issued afterwards
    assert offers.send_offer(db, line.id, make_terms()).version == 2


def test_send_on_cancelled_service_is_a_state_error(db, world):
    order = make_order(db, world)
    line = order.services[0]
    orders.cancel_service(db, line.id)

    with pytest.raises(StateError):
        offers.send_offer(db, line.id, make_terms())


def test_single_pending_index_backs_the_invariant(db, world):
    line = make_order(db, world).services[0]
    offers.send_offer(db, line.id, make_terms())

    with pytest.raises(ConflictError):
        with atomic(db, "duplicate pending offer"):
            db.add(Offer(
                order_service_id=line.id,
                version=99,
                hourly_rate=50,
                min_hours=1,
                max_hours=2,
                status=OfferStatus.pending,
            ))
    assert pending_count(db, line.id) == 1


def test_non_unique_integrity_errors_are_not_reported_as_conflicts(db, world):
    line = make_order(db, world).services[0]

    with pytest.raises(IntegrityError):
        with atomic(db, "duplicate pending offer"):
            db.add(Offer(
                order_service_id=line.id,
                version=1,
                hourly_rate=None,
                min_hours=1,
                max_hours=2,
                status=OfferStatus.pending,
            ))
    assert pending_count(db, line.id) == 0


def test_offer_transitions_are_audited(db, world):
    line = make_order(db, world).services[0]
    offer = offers.send_offer(db, line.id, make_terms(), actor=world.company_admin)
    offers.accept_offer(db, offer.id, actor=world.client)

    actions = [
        a.action
        for a in db.query(AuditLog).filter(AuditLog.entity_type == "offer").order_by(AuditLog.id)
    ]
    assert actions == ["SEND", "ACCEPT"]


def test_failed_operation_leaves_no_audit_trace(db, world):
    line = make_order(db, world).services[0]
    offers.send_offer(db, line.id, make_terms())
    before = db.query(AuditLog).count()

    with pytest.raises(ConflictError):
        offers.send_offer(db, line.id, make_terms())

    assert db.query(AuditLog).count() == before
