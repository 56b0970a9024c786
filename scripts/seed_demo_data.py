"""
Seed the local database with a demo marketplace: platform admin, one moving
company with its staff, a customer and the service catalog.

Usage:
  python scripts/seed_demo_data.py

This script is idempotent: running it multiple times upserts the same
records based on unique fields (email for users, name for companies and services).
"""

from datetime import date

from movehub.db import SessionLocal, Base, engine
from movehub.models.enums import EmploymentRole, EmploymentStatus, UserRole
from movehub.models.models import Addition, Company, Employment, Service, User
from movehub.auth.security import get_password_hash

DEMO_PASSWORD = "demo1234"


def ensure_company(session, name: str, email: str, description: str = "") -> Company:
    company = session.query(Company).filter(Company.name == name).first()
    if company:
        return company
    company = Company(name=name, email=email, description=description, is_active=True)
    session.add(company)
    session.flush()
    return company


def ensure_user(session, name: str, email: str, role: UserRole, company_id=None) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        user.name = name
        user.role = role
        user.company_id = company_id
        return user
    user = User(
        name=name,
        email=email,
        password_hash=get_password_hash(DEMO_PASSWORD),
        role=role,
        company_id=company_id,
        is_active=True,
    )
    session.add(user)
    session.flush()
    return user


def ensure_service(session, name: str, description: str) -> Service:
    service = session.query(Service).filter(Service.name == name).first()
    if service:
        return service
    service = Service(name=name, description=description, is_active=True)
    session.add(service)
    session.flush()
    return service


def ensure_addition(session, name: str, default_price: float) -> Addition:
    addition = session.query(Addition).filter(Addition.name == name).first()
    if addition:
        return addition
    addition = Addition(name=name, default_price=default_price)
    session.add(addition)
    session.flush()
    return addition


def ensure_employment(session, employee: User, company: Company, role: EmploymentRole, hourly_rate: float) -> Employment:
    employment = session.query(Employment).filter(
        Employment.employee_id == employee.id,
        Employment.company_id == company.id,
        Employment.status == EmploymentStatus.active,
    ).first()
    if employment:
        return employment
    employment = Employment(
        employee_id=employee.id,
        company_id=company.id,
        role=role,
        hourly_rate=hourly_rate,
        status=EmploymentStatus.active,
        start_date=date.today(),
    )
    session.add(employment)
    session.flush()
    return employment


def main() -> None:
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        ensure_user(session, "Site Admin", "admin@movehub.example", UserRole.site_admin)

        company = ensure_company(session, "Swift Movers", "office@swiftmovers.example", "Moving and cleaning in Zurich.")
        ensure_user(session, "Carla Admin", "carla@swiftmovers.example", UserRole.company_admin, company.id)
        driver = ensure_user(session, "Dario Driver", "dario@swiftmovers.example", UserRole.driver)
        worker = ensure_user(session, "Wanda Worker", "wanda@swiftmovers.example", UserRole.worker)
        ensure_employment(session, driver, company, EmploymentRole.driver, 32.0)
        ensure_employment(session, worker, company, EmploymentRole.worker, 28.0)

        ensure_user(session, "Chris Customer", "chris@customer.example", UserRole.client)

        ensure_service(session, "Moving", "Transport of furniture and boxes.")
        ensure_service(session, "Cleaning", "Final cleaning of the old apartment.")
        ensure_addition(session, "Piano", 250.0)
        ensure_addition(session, "Packing boxes", 3.5)

        session.commit()
        print("Seed completed: users, company, employments and catalog upserted.")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
