from datetime import UTC, datetime, timedelta

from sqlalchemy import select

from app.application.services.auth_service import AuthService
from app.application.services.component_service import create_component
from app.application.services.incident_service import create_incident
from app.application.services.maintenance_service import create_maintenance
from app.domain.models.component import Component
from app.infrastructure.db.session import SessionLocal


SEED_COMPONENTS = (
    {
        "name": "Public API",
        "group_name": "Platform",
        "sort_order": 10,
        "version_url": "http://localhost:8000/version",
        "shadow_version_url": "http://localhost:8001/version",
    },
    {
        "name": "Dashboard",
        "group_name": "Platform",
        "sort_order": 20,
        "website_url": "http://localhost:3000",
    },
    {
        "name": "Billing Exports",
        "group_name": "Back office",
        "sort_order": 30,
    },
)


def seed_dev_data() -> None:
    with SessionLocal() as db:
        admin = AuthService.ensure_default_admin(db)
        if admin is not None:
            print(f"Created admin user: {admin.username}")

        existing = db.execute(select(Component).where(Component.name == SEED_COMPONENTS[0]["name"])).scalar_one_or_none()
        if existing is not None:
            print(f"Seed exists: component_id={existing.id}")
            return

        components = [create_component(db, **values) for values in SEED_COMPONENTS]

        now = datetime.now(UTC)
        details = create_incident(
            db,
            title="Elevated export latency",
            started_at=now - timedelta(minutes=30),
            impact="P2",
            summary="Exports are slower than usual while a backlog drains.",
            affected_component_ids=[components[2].id],
        )

        maintenance = create_maintenance(
            db,
            title="Database upgrade",
            window_start=now + timedelta(days=2),
            window_end=now + timedelta(days=2, hours=1),
            affected_component_ids=[components[0].id, components[1].id],
        )

        print("Created dev seed data:")
        for component in components:
            print(f"- component {component.name}: {component.id}")
        print(f"- incident_number: {details.incident.incident_number}")
        print(f"- maintenance_id: {maintenance.id}")


if __name__ == "__main__":
    seed_dev_data()
