"""
Request context shared by every service call
"""
from pydantic import BaseModel
from typing import Optional
from uuid import UUID

ADMIN_ROLE = "admin"

class RequestContext(BaseModel):
    """Authenticated caller, resolved by the (external) auth layer"""
    organization_id: UUID
    user_id: Optional[UUID] = None
    role: str = "sales"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    class Config:
        frozen = True
