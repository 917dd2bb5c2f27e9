from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional

class VendorCreate(BaseModel):
    business_name: str
    description: Optional[str] = None
    location: Optional[str] = None
    business_hours: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    categories: list[str] = []

class VendorUpdate(BaseModel):
    business_name: Optional[str] = None
    description: Optional[str] = None
    logo_image: Optional[str] = None
    banner_image: Optional[str] = None
    location: Optional[str] = None
    business_hours: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    categories: Optional[list[str]] = None

class VendorRead(BaseModel):
    id: int
    user_id: int
    business_name: str
    description: Optional[str] = None
    logo_image: Optional[str] = None
    banner_image: Optional[str] = None
    location: Optional[str] = None
    business_hours: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    categories: list[str] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class VendorListItem(VendorRead):
    rating: Optional[float] = None
    review_count: int = 0
