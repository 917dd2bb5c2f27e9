# backend/univendor/services/vendor_service.py
import logging
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.db.models.product import Product, ProductReview
from univendor.db.models.user import User
from univendor.db.models.vendor import Vendor

logger = logging.getLogger(__name__)


async def get_vendor(db: AsyncSession, vendor_id: int) -> Vendor:
    vendor = await db.get(Vendor, vendor_id)
    if not vendor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vendor not found")
    return vendor


async def get_vendor_for_user(db: AsyncSession, user_id: int) -> Optional[Vendor]:
    result = await db.execute(select(Vendor).where(Vendor.user_id == user_id))
    return result.scalar_one_or_none()


async def get_owned_vendor(db: AsyncSession, vendor_id: int, user: User) -> Vendor:
    """Vendor row that `user` owns; anything else is 401 like the other vendor mutations."""
    vendor = await get_vendor(db, vendor_id)
    if vendor.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return vendor


async def create_vendor(db: AsyncSession, user: User, vendor_in) -> Vendor:
    if await get_vendor_for_user(db, user.id):
        raise HTTPException(status_code=400, detail="Vendor already exists for this user")

    vendor = Vendor(user_id=user.id, **vendor_in.model_dump())
    db.add(vendor)
    await db.commit()
    await db.refresh(vendor)
    logger.info(f"[Vendor] User {user.id} opened vendor {vendor.id} ({vendor.business_name})")
    return vendor


async def update_vendor(db: AsyncSession, vendor: Vendor, vendor_in) -> Vendor:
    for field, value in vendor_in.model_dump(exclude_unset=True).items():
        setattr(vendor, field, value)
    await db.commit()
    await db.refresh(vendor)
    return vendor


async def _ratings_by_vendor(db: AsyncSession, vendor_ids: list[int]) -> dict:
    """vendor_id -> (average rating over its products' reviews, review count)."""
    if not vendor_ids:
        return {}
    stmt = (
        select(Product.vendor_id, func.avg(ProductReview.rating), func.count(ProductReview.id))
        .join(ProductReview, ProductReview.product_id == Product.id)
        .where(Product.vendor_id.in_(vendor_ids))
        .group_by(Product.vendor_id)
    )
    result = await db.execute(stmt)
    return {vendor_id: (float(avg or 0), count) for vendor_id, avg, count in result.all()}


async def filter_vendors(
    db: AsyncSession,
    q: Optional[str] = None,
    location: Optional[str] = None,
    category: Optional[str] = None,
    min_rating: Optional[float] = None,
) -> list[dict]:
    stmt = select(Vendor).order_by(Vendor.business_name)
    if q:
        pattern = f"%{q}%"
        stmt = stmt.where(or_(Vendor.business_name.ilike(pattern), Vendor.description.ilike(pattern)))
    if location:
        stmt = stmt.where(Vendor.location.ilike(f"%{location}%"))

    vendors = (await db.execute(stmt)).scalars().all()
    # JSON list membership is not portable SQL; categories are short lists
    if category:
        vendors = [v for v in vendors if category in (v.categories or [])]

    ratings = await _ratings_by_vendor(db, [v.id for v in vendors])
    items = []
    for vendor in vendors:
        rating, review_count = ratings.get(vendor.id, (0.0, 0))
        if min_rating is not None and rating < min_rating:
            continue
        items.append({**serialize_vendor(vendor), "rating": round(rating, 2), "review_count": review_count})
    return items


def serialize_vendor(vendor: Vendor) -> dict:
    return {
        "id": vendor.id,
        "user_id": vendor.user_id,
        "business_name": vendor.business_name,
        "description": vendor.description,
        "logo_image": vendor.logo_image,
        "banner_image": vendor.banner_image,
        "location": vendor.location,
        "business_hours": vendor.business_hours,
        "phone": vendor.phone,
        "website": vendor.website,
        "categories": vendor.categories or [],
        "created_at": vendor.created_at,
    }
