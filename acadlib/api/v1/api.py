# acadlib/api/v1/api.py
from fastapi import APIRouter

from acadlib.api.v1.endpoints import auth, bookings, materials, requests

api_router_v1 = APIRouter(prefix="/api/v1")

api_router_v1.include_router(auth.router, prefix="/auth")
api_router_v1.include_router(materials.router)
api_router_v1.include_router(bookings.router)
api_router_v1.include_router(requests.router)
