from fastapi import APIRouter

from repairbid.api.v1.admin import router as admin_router
from repairbid.api.v1.bookings import router as bookings_router
from repairbid.api.v1.offers import router as offers_router
from repairbid.api.v1.requests import router as requests_router

v1_router = APIRouter()

v1_router.include_router(requests_router)
v1_router.include_router(offers_router)
v1_router.include_router(bookings_router)
v1_router.include_router(admin_router)
