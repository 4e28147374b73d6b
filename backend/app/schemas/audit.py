from datetime import datetime

from app.schemas.bankda import _CamelModel


class AuditOut(_CamelModel):
    id: int
    created_at: datetime | None
    username: str
    action: str
    entity_type: str
    entity_id: int | None
    details: dict | list | None
