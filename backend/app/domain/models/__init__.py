from app.domain.models.component import Component
from app.domain.models.incident import Incident, IncidentComponent, IncidentUpdate
from app.domain.models.maintenance import Maintenance, MaintenanceComponent
from app.domain.models.user import User

__all__ = [
    "Component",
    "Incident",
    "IncidentComponent",
    "IncidentUpdate",
    "Maintenance",
    "MaintenanceComponent",
    "User",
]
