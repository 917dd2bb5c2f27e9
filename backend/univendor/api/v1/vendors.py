# backend/univendor/api/v1/vendors.py
from typing import Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.api.deps import get_current_user, request_meta
from univendor.db.database import get_db
from univendor.db.models.user import User
from univendor.schemas.product import ProductCreate, ProductUpdate, ProductRead
from univendor.schemas.vendor import VendorCreate, VendorUpdate, VendorRead, VendorListItem
from univendor.services import product_service, vendor_service
from univendor.services.security_log_service import log_security_event

router = APIRouter()


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_vendor(
    vendor_in: VendorCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vendor = await vendor_service.create_vendor(db, user, vendor_in)
    return {"vendor": vendor_service.serialize_vendor(vendor)}


@router.get("/check")
async def check_vendor(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Whether the caller has a vendor profile."""
    vendor = await vendor_service.get_vendor_for_user(db, user.id)
    return {
        "is_vendor": vendor is not None,
        "vendor": vendor_service.serialize_vendor(vendor) if vendor else None,
    }


@router.get("/filter", response_model=list[VendorListItem])
async def filter_vendors(
    q: Optional[str] = None,
    location: Optional[str] = None,
    category: Optional[str] = None,
    min_rating: Optional[float] = None,
    db: AsyncSession = Depends(get_db),
):
    return await vendor_service.filter_vendors(db, q=q, location=location, category=category, min_rating=min_rating)


@router.get("/{vendor_id}", response_model=VendorRead)
async def get_vendor(vendor_id: int, db: AsyncSession = Depends(get_db)):
    return await vendor_service.get_vendor(db, vendor_id)


@router.patch("/{vendor_id}/profile", response_model=VendorRead)
async def update_vendor_profile(
    vendor_id: int,
    vendor_in: VendorUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vendor = await vendor_service.get_owned_vendor(db, vendor_id, user)
    vendor = await vendor_service.update_vendor(db, vendor, vendor_in)
    await log_security_event("vendor_profile_updated", user_id=user.id, details={"vendor_id": vendor.id}, **request_meta(request))
    return vendor


# --- Products of a vendor ---

@router.get("/{vendor_id}/products")
async def list_vendor_products(vendor_id: int, db: AsyncSession = Depends(get_db)):
    await vendor_service.get_vendor(db, vendor_id)
    return {"products": await product_service.list_products(db, vendor_id=vendor_id, limit=100)}


@router.post("/{vendor_id}/products", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_vendor_product(
    vendor_id: int,
    product_in: ProductCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vendor = await vendor_service.get_owned_vendor(db, vendor_id, user)
    return await product_service.create_product(db, vendor, product_in)


@router.get("/{vendor_id}/products/{product_id}", response_model=ProductRead)
async def get_vendor_product(vendor_id: int, product_id: int, db: AsyncSession = Depends(get_db)):
    return await product_service.get_vendor_product(db, vendor_id, product_id)


@router.patch("/{vendor_id}/products/{product_id}", response_model=ProductRead)
async def update_vendor_product(
    vendor_id: int,
    product_id: int,
    product_in: ProductUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await vendor_service.get_owned_vendor(db, vendor_id, user)
    product = await product_service.get_vendor_product(db, vendor_id, product_id)
    return await product_service.update_product(db, product, product_in)


@router.delete("/{vendor_id}/products/{product_id}")
async def delete_vendor_product(
    vendor_id: int,
    product_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await vendor_service.get_owned_vendor(db, vendor_id, user)
    product = await product_service.get_vendor_product(db, vendor_id, product_id)
    await product_service.delete_product(db, product)
    return {"success": True}
