from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

class ProductBase(BaseModel):
    name: str
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    tags: list[str] = []

class ProductCreate(ProductBase):
    pass

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None

class ProductRead(ProductBase):
    id: int
    vendor_id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None

class ReviewRead(BaseModel):
    id: int
    product_id: int
    user_id: int
    user_name: str
    rating: int
    comment: Optional[str] = None
    created_at: datetime
