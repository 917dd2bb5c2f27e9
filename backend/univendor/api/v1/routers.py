# backend/univendor/api/v1/routers.py
from fastapi import APIRouter
from univendor.api.v1 import admin, auth, messages, products, realtime, uploads, users, vendors

# Main API router (/api)
api_router = APIRouter(prefix="/api")

# --- Accounts ---
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])

# --- Marketplace ---
api_router.include_router(vendors.router, prefix="/vendors", tags=["vendors"])
api_router.include_router(products.router, prefix="/products", tags=["products"])
api_router.include_router(uploads.router, tags=["uploads"])

# --- Messaging ---
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(realtime.router, tags=["realtime"])

# --- Admin ---
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
