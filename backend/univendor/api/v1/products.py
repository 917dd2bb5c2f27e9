# backend/univendor/api/v1/products.py
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.api.deps import get_current_user
from univendor.db.database import get_db
from univendor.db.models.user import User
from univendor.schemas.product import ProductCreate, ProductRead, ReviewCreate, ReviewRead
from univendor.services import product_service, vendor_service

router = APIRouter()


@router.get("")
async def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    vendor_id: Optional[int] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    products = await product_service.list_products(
        db, category=category, search=search, vendor_id=vendor_id, limit=limit, offset=offset
    )
    return {"products": products}


@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_in: ProductCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vendor = await vendor_service.get_vendor_for_user(db, user.id)
    if not vendor:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only vendors can create products")
    return await product_service.create_product(db, vendor, product_in)


@router.get("/{product_id}/reviews", response_model=list[ReviewRead])
async def list_reviews(product_id: int, db: AsyncSession = Depends(get_db)):
    return await product_service.list_reviews(db, product_id)


@router.post("/{product_id}/reviews", response_model=ReviewRead, status_code=status.HTTP_201_CREATED)
async def create_review(
    product_id: int,
    review_in: ReviewCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await product_service.create_review(db, user, product_id, review_in)
