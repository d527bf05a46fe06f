from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from breakfast_api.core.database import get_db
from breakfast_api.core.deps import get_current_outlet, require_admin, require_outlet
from breakfast_api.core.serialization_helpers import serialize_datetime
from breakfast_api.models.outlet import Outlet
from breakfast_api.models.restock import RestockRequest
from breakfast_api.models.user import User
from breakfast_api.services import restock_service

router = APIRouter()


class RestockCreate(BaseModel):
    product_id: int = Field(..., alias="productId")
    requested_quantity: int = Field(..., alias="requestedQuantity", ge=1)
    reason: Optional[str] = Field(None, max_length=500)

    class Config:
        populate_by_name = True


class RestockProcess(BaseModel):
    status: str
    admin_note: Optional[str] = Field(None, alias="adminNote", max_length=500)

    class Config:
        populate_by_name = True


def serialize_request(request: RestockRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "outlet": {"id": request.outlet.id, "name": request.outlet.name} if request.outlet else None,
        "product": {
            "id": request.product.id,
            "name": request.product.name,
            "stock": request.product.stock,
        } if request.product else None,
        "currentQuantity": request.current_quantity,
        "requestedQuantity": request.requested_quantity,
        "reason": request.reason,
        "status": request.status,
        "adminNote": request.admin_note,
        "processedAt": serialize_datetime(request.processed_at),
        "processedBy": request.processed_by,
        "createdAt": serialize_datetime(request.created_at),
    }


@router.post("/request", status_code=status.HTTP_201_CREATED)
def create_restock_request(
    data: RestockCreate,
    db: Session = Depends(get_db),
    outlet: Outlet = Depends(get_current_outlet),
    current_user: User = Depends(require_outlet),
):
    request = restock_service.create_request(
        db, outlet, data.product_id, data.requested_quantity, reason=data.reason, actor_id=current_user.id,
    )
    return {
        "success": True,
        "message": "Restock request created successfully",
        "request": serialize_request(request),
    }


@router.get("/outlet-requests")
def get_outlet_restock_requests(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    outlet: Outlet = Depends(get_current_outlet),
):
    requests: List[RestockRequest] = restock_service.list_requests(db, outlet_id=outlet.id, status=status)
    return {"success": True, "requests": [serialize_request(r) for r in requests]}


@router.get("/all")
def get_restock_requests(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    requests = restock_service.list_requests(db, status=status)
    return {"success": True, "requests": [serialize_request(r) for r in requests]}


@router.put("/process/{request_id}")
def process_restock_request(
    request_id: int,
    data: RestockProcess,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    request = restock_service.process_request(db, request_id, data.status, admin, admin_note=data.admin_note)
    return {
        "success": True,
        "message": f"Restock request {request.status}",
        "request": serialize_request(request),
    }
