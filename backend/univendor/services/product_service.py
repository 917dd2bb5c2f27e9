# backend/univendor/services/product_service.py
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy import select, func, or_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from univendor.db.models.product import Product, ProductReview
from univendor.db.models.user import User
from univendor.db.models.vendor import Vendor


async def list_products(
    db: AsyncSession,
    category: Optional[str] = None,
    search: Optional[str] = None,
    vendor_id: Optional[int] = None,
    limit: int = 20,
    offset: int = 0,
) -> list[dict]:
    """Catalogue page with vendor name and review aggregates, newest first."""
    stmt = (
        select(
            Product,
            Vendor.business_name,
            Vendor.logo_image,
            func.coalesce(func.avg(ProductReview.rating), 0),
            func.count(ProductReview.id),
        )
        .join(Vendor, Product.vendor_id == Vendor.id)
        .outerjoin(ProductReview, ProductReview.product_id == Product.id)
        .group_by(Product.id, Vendor.business_name, Vendor.logo_image)
        .order_by(desc(Product.created_at), desc(Product.id))
        .limit(limit)
        .offset(offset)
    )
    if category:
        stmt = stmt.where(Product.category == category)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    if vendor_id:
        stmt = stmt.where(Product.vendor_id == vendor_id)

    rows = (await db.execute(stmt)).all()
    return [
        {
            **serialize_product(product),
            "vendor_name": vendor_name,
            "vendor_logo": vendor_logo,
            "average_rating": round(float(avg_rating), 2),
            "review_count": review_count,
        }
        for product, vendor_name, vendor_logo, avg_rating, review_count in rows
    ]


async def create_product(db: AsyncSession, vendor: Vendor, product_in) -> Product:
    product = Product(vendor_id=vendor.id, **product_in.model_dump())
    db.add(product)
    await db.commit()
    await db.refresh(product)
    return product


async def get_vendor_product(db: AsyncSession, vendor_id: int, product_id: int) -> Product:
    product = await db.get(Product, product_id)
    if not product or product.vendor_id != vendor_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


async def update_product(db: AsyncSession, product: Product, product_in) -> Product:
    for field, value in product_in.model_dump(exclude_unset=True).items():
        setattr(product, field, value)
    await db.commit()
    await db.refresh(product)
    return product


async def delete_product(db: AsyncSession, product: Product):
    await db.delete(product)
    await db.commit()


async def list_reviews(db: AsyncSession, product_id: int) -> list[dict]:
    stmt = (
        select(ProductReview, User)
        .join(User, ProductReview.user_id == User.id)
        .where(ProductReview.product_id == product_id)
        .order_by(desc(ProductReview.created_at), desc(ProductReview.id))
    )
    rows = (await db.execute(stmt)).all()
    return [
        {
            "id": review.id,
            "product_id": review.product_id,
            "user_id": author.id,
            "user_name": author.full_name,
            "rating": review.rating,
            "comment": review.comment,
            "created_at": review.created_at,
        }
        for review, author in rows
    ]


async def create_review(db: AsyncSession, user: User, product_id: int, review_in) -> dict:
    product = await db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    existing = await db.execute(
        select(ProductReview.id).where(ProductReview.user_id == user.id, ProductReview.product_id == product_id)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="You have already reviewed this product")

    review = ProductReview(user_id=user.id, product_id=product_id, rating=review_in.rating, comment=review_in.comment)
    db.add(review)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race with a concurrent review from the same user
        await db.rollback()
        raise HTTPException(status_code=400, detail="You have already reviewed this product")
    await db.refresh(review)
    return {
        "id": review.id,
        "product_id": product_id,
        "user_id": user.id,
        "user_name": user.full_name,
        "rating": review.rating,
        "comment": review.comment,
        "created_at": review.created_at,
    }


def serialize_product(product: Product) -> dict:
    return {
        "id": product.id,
        "vendor_id": product.vendor_id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "image": product.image,
        "category": product.category,
        "tags": product.tags or [],
        "created_at": product.created_at,
        "updated_at": product.updated_at,
    }
