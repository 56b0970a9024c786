import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("RATE_LIMIT", "10000/minute")
os.environ.setdefault("JWT_SECRET", "test-secret")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from movehub.auth.security import create_access_token, get_password_hash
from movehub.db import Base, get_db
from movehub.main import app
from movehub.models.enums import EmploymentRole, EmploymentStatus, UserRole
from movehub.models.models import Company, Employment, Service, User
from movehub.schemas.offers import OfferTerms
from movehub.schemas.orders import LocationInput, OrderCreate, OrderServiceCreate
from movehub.services import offers, orders

PASSWORD = "secret123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def _user(db, name, email, role, company=None):
    user = User(
        name=name,
        email=email,
        password_hash=get_password_hash(PASSWORD),
        role=role,
        company_id=company.id if company else None,
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user


def _employ(db, user, company, rate):
    db.add(Employment(
        employee_id=user.id,
        company_id=company.id,
        role=EmploymentRole.worker,
        hourly_rate=rate,
        status=EmploymentStatus.active,
    ))


@pytest.fixture
def world(db):
    """Platform admin, two companies with admins, a customer and three workers."""
    company = Company(name="Swift Movers", email="office@swift.example")
    other_company = Company(name="Rival Removals", email="office@rival.example")
    db.add_all([company, other_company])
    db.flush()

    w = SimpleNamespace(company=company, other_company=other_company)
    w.admin = _user(db, "Site Admin", "admin@movehub.example", UserRole.site_admin)
    w.company_admin = _user(db, "Carla Admin", "carla@swift.example", UserRole.company_admin, company)
    w.other_admin = _user(db, "Rick Admin", "rick@rival.example", UserRole.company_admin, other_company)
    w.client = _user(db, "Chris Customer", "chris@customer.example", UserRole.client)
    w.other_client = _user(db, "Olga Customer", "olga@customer.example", UserRole.client)
    w.worker_a = _user(db, "Anna Worker", "anna@swift.example", UserRole.worker)
    w.worker_b = _user(db, "Ben Driver", "ben@swift.example", UserRole.driver)
    w.freelancer = _user(db, "Fred Freelance", "fred@example.com", UserRole.worker)
    _employ(db, w.worker_a, company, 30.0)
    _employ(db, w.worker_b, company, 35.0)

    w.moving = Service(name="Moving", description="Furniture transport")
    w.cleaning = Service(name="Cleaning", description="Final cleaning")
    db.add_all([w.moving, w.cleaning])
    db.commit()
    return w


def make_terms(rate=80, min_hours=8, max_hours=20, **kwargs) -> OfferTerms:
    return OfferTerms(hourly_rate=rate, min_hours=min_hours, max_hours=max_hours, **kwargs)


def make_order(db, world, services=None, assign=True):
    """Order placed by the site admin for the customer; lines assigned to Swift Movers."""
    services = services or [world.moving]
    data = OrderCreate(
        client_id=world.client.id,
        location=LocationInput(address="Bahnhofstrasse 1, Zurich", floor=3),
        destination_location=LocationInput(address="Seestrasse 10, Zurich"),
        number_of_rooms=3.5,
        services=[
            OrderServiceCreate(service_id=s.id, company_id=world.company.id if assign else None)
            for s in services
        ],
    )
    return orders.create_order(db, data, actor=world.admin)


def accepted_offer(db, world, order=None):
    order = order or make_order(db, world)
    line = order.services[0]
    offer = offers.send_offer(db, line.id, make_terms(), actor=world.company_admin)
    return offers.accept_offer(db, offer.id, actor=world.client)


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}
