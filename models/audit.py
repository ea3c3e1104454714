from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

AUDIT_SOURCES = ("admin_dashboard", "api", "migration", "google_sheets")


class PriceUpdateChanges(BaseModel):
    action: Literal["price_update"]
    record_id: str
    medication_id: str = ""
    pharmacy_id: str = ""
    dosage: str = ""
    old_price: Optional[float] = None
    new_price: Optional[float] = None
    deleted: bool = False


class PriceBulkUpdateChanges(BaseModel):
    action: Literal["price_bulk_update"]
    total: int
    modified: int
    upserted: int
    medication_ids: List[str] = Field(default_factory=list)


class EntityChanges(BaseModel):
    action: Literal[
        "medication_create",
        "medication_update",
        "medication_delete",
        "pharmacy_create",
        "pharmacy_update",
        "pharmacy_delete",
        "category_update",
    ]
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    cascade_deleted: int = 0


class DataTransferChanges(BaseModel):
    action: Literal["data_import", "data_export"]
    stats: Dict[str, Any] = Field(default_factory=dict)


class LoginChanges(BaseModel):
    action: Literal["user_login"]


AuditChanges = Annotated[
    Union[PriceUpdateChanges, PriceBulkUpdateChanges, EntityChanges, DataTransferChanges, LoginChanges],
    Field(discriminator="action"),
]

_adapter = TypeAdapter(AuditChanges)


def build_changes(action: str, **fields: Any) -> Dict[str, Any]:
    """Validate the change payload for an action; raises pydantic.ValidationError on mismatch."""
    model = _adapter.validate_python({"action": action, **fields})
    return model.model_dump()
