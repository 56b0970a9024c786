import pytest

from movehub.models.enums import OfferStatus, OrderCreator, OrderServiceStatus, OrderStatus
from movehub.models.models import Addition
from movehub.schemas.orders import AdditionInput, LocationInput, OrderCreate, OrderServiceCreate, OrderUpdate
from movehub.services import offers, orders
from movehub.services.errors import NotAuthorizedError, NotFoundError, StateError, ValidationError
from movehub.services.order_status import check_order_status

from conftest import make_order, make_terms


def customer_order(world, **kwargs):
    return OrderCreate(
        location=LocationInput(address="  Limmatquai 5, Zurich "),
        services=[OrderServiceCreate(service_id=world.moving.id), OrderServiceCreate(service_id=world.cleaning.id)],
        **kwargs,
    )


def test_customer_places_order(db, world):
    order = orders.create_order(db, customer_order(world, notes="  Fragile glass "), actor=world.client)

    assert order.client_id == world.client.id
    assert order.created_by == OrderCreator.customer
    assert order.notes == "Fragile glass"
    assert order.location.address == "Limmatquai 5, Zurich"
    assert [os.service_id for os in order.services] == [world.moving.id, world.cleaning.id]
    assert all(os.status == OrderServiceStatus.pending for os in order.services)
    assert order.status == OrderStatus.pending


def test_site_admin_places_order_with_company(db, world):
    order = make_order(db, world)

    assert order.created_by == OrderCreator.site_admin
    assert order.created_by_user_id == world.admin.id
    assert order.services[0].company_id == world.company.id
    assert order.status == OrderStatus.assigned


def test_additions_are_attached(db, world):
    piano = Addition(name="Piano", default_price=250)
    db.add(piano)
    db.commit()
    data = OrderCreate(
        location=LocationInput(address="Seefeld 2"),
        services=[OrderServiceCreate(
            service_id=world.moving.id,
            additions=[AdditionInput(addition_id=piano.id, quantity=1, note="Upright")],
        )],
    )

    order = orders.create_order(db, data, actor=world.client)

    additions = order.services[0].additions
    assert [(a.addition_id, a.note) for a in additions] == [(piano.id, "Upright")]


def test_order_needs_services(db, world):
    data = OrderCreate(location=LocationInput(address="Somewhere 1"), services=[])
    with pytest.raises(ValidationError):
        orders.create_order(db, data, actor=world.client)


def test_workers_cannot_place_orders(db, world):
    with pytest.raises(NotAuthorizedError):
        orders.create_order(db, customer_order(world), actor=world.worker_a)


def test_customer_cannot_order_for_someone_else(db, world):
    with pytest.raises(NotAuthorizedError):
        orders.create_order(db, customer_order(world, client_id=world.other_client.id), actor=world.client)


def test_customer_cannot_pick_company(db, world):
    data = OrderCreate(
        location=LocationInput(address="Somewhere 1"),
        services=[OrderServiceCreate(service_id=world.moving.id, company_id=world.company.id)],
    )
    with pytest.raises(NotAuthorizedError):
        orders.create_order(db, data, actor=world.client)


def test_unknown_service(db, world):
    data = OrderCreate(location=LocationInput(address="Somewhere 1"), services=[OrderServiceCreate(service_id=999)])
    with pytest.raises(NotFoundError):
        orders.create_order(db, data, actor=world.client)


def test_list_orders_filters(db, world):
    mine = orders.create_order(db, customer_order(world), actor=world.client)
    assigned = make_order(db, world)
    orders.create_order(
        db,
        OrderCreate(
            location=LocationInput(address="Elsewhere 3"),
            services=[OrderServiceCreate(service_id=world.cleaning.id)],
        ),
        actor=world.other_client,
    )

    by_client, total = orders.list_orders(db, client_id=world.client.id)
    assert total == 2
    assert {o.id for o in by_client} == {mine.id, assigned.id}

    by_company, _ = orders.list_orders(db, company_id=world.company.id)
    assert [o.id for o in by_company] == [assigned.id]

    by_status, _ = orders.list_orders(db, status="assigned")
    assert [o.id for o in by_status] == [assigned.id]

    by_service, total = orders.list_orders(db, service_id=world.cleaning.id)
    assert total == 2

    page, total = orders.list_orders(db, page=2, limit=2)
    assert total == 3
    assert len(page) == 1


def test_list_orders_unknown_status(db, world):
    with pytest.raises(ValidationError):
        orders.list_orders(db, status="lost")


def test_update_order_until_priced(db, world):
    order = make_order(db, world)
    orders.update_order(db, order.id, OrderUpdate(number_of_rooms=4, notes="Second floor"), actor=world.client)
    assert order.number_of_rooms == 4
    assert order.notes == "Second floor"

    offers.send_offer(db, order.services[0].id, make_terms())
    with pytest.raises(StateError):
        orders.update_order(db, order.id, OrderUpdate(notes="Too late"))


def test_assign_and_decline_company(db, world):
    order = orders.create_order(db, customer_order(world), actor=world.client)
    line = order.services[0]

    orders.assign_company(db, line.id, world.company.id, actor=world.admin)
    assert line.status == OrderServiceStatus.assigned
    assert order.status == OrderStatus.assigned

    orders.decline_order_service(db, line.id, actor=world.company_admin)
    assert line.company_id is None
    assert line.status == OrderServiceStatus.pending
    assert order.status == OrderStatus.pending


def test_assign_company_after_rejection(db, world):
    line = make_order(db, world).services[0]
    offer = offers.send_offer(db, line.id, make_terms())
    offers.reject_offer(db, offer.id)

    orders.assign_company(db, line.id, world.other_company.id)

    assert line.company_id == world.other_company.id
    assert line.status == OrderServiceStatus.assigned


def test_assign_company_blocked_while_offer_pending(db, world):
    line = make_order(db, world).services[0]
    offers.send_offer(db, line.id, make_terms())
    with pytest.raises(StateError):
        orders.assign_company(db, line.id, world.other_company.id)


def test_start_requires_accepted_offer(db, world):
    line = make_order(db, world).services[0]
    with pytest.raises(StateError):
        orders.start_service(db, line.id)

    offer = offers.send_offer(db, line.id, make_terms())
    offers.accept_offer(db, offer.id)
    orders.start_service(db, line.id)

    assert line.status == OrderServiceStatus.in_progress
    assert line.started_at is not None
    assert line.order.status == OrderStatus.in_progress


def test_cancel_order_cancels_open_lines_and_pending_offers(db, world):
    order = make_order(db, world, services=[world.moving, world.cleaning])
    offer = offers.send_offer(db, order.services[0].id, make_terms())

    orders.cancel_order(db, order.id, reason=" Moved abroad ", actor=world.client)

    db.refresh(offer)
    assert offer.status == OfferStatus.cancelled
    assert all(os.status == OrderServiceStatus.cancelled for os in order.services)
    assert order.status == OrderStatus.cancelled
    assert order.cancel_reason == "Moved abroad"

    with pytest.raises(StateError):
        orders.cancel_order(db, order.id)


def test_mixed_phases_stay_consistent(db, world):
    order = make_order(db, world, services=[world.moving, world.cleaning])
    first, second = order.services

    offer = offers.send_offer(db, first.id, make_terms())
    assert order.status == OrderStatus.offer_sent
    offers.reject_offer(db, offer.id)
    assert order.status == OrderStatus.offer_rejected

    orders.cancel_service(db, second.id)
    assert order.status == OrderStatus.offer_rejected
    assert check_order_status(order)


def test_get_order_service_checks_parent(db, world):
    order = make_order(db, world)
    other = make_order(db, world)
    with pytest.raises(NotFoundError):
        orders.get_order_service(db, order.id, other.services[0].id)
