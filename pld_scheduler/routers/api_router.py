from fastapi import APIRouter
from pld_scheduler.routers import admin, calendar, requests

# Centralized API router hub: main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(calendar.router, tags=["Calendar"])
api_router.include_router(requests.router, tags=["Requests"])
api_router.include_router(admin.router, tags=["Administration"])
