from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from breakfast_api.core.database import get_db
from breakfast_api.core.deps import require_admin
from breakfast_api.core.errors import ValidationError
from breakfast_api.core.serialization_helpers import serialize_datetime
from breakfast_api.models.user import User
from breakfast_api.services.status_history import ENTITY_TYPES, list_status_history

router = APIRouter()


@router.get("/{entity_type}/{entity_id}")
def get_status_history(
    entity_type: str,
    entity_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Status history for an order, credit or restock request"""
    if entity_type not in ENTITY_TYPES:
        raise ValidationError("Invalid entity type")

    return [
        {
            "id": h.id,
            "entityType": h.entity_type,
            "entityId": h.entity_id,
            "oldStatus": h.old_status,
            "newStatus": h.new_status,
            "userId": h.user_id,
            "notes": h.notes,
            "createdAt": serialize_datetime(h.created_at),
        }
        for h in list_status_history(db, entity_type, entity_id)
    ]
