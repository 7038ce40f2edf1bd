from fastapi import APIRouter

from textile_dashboard.api.routes import production_dashboard

api_router = APIRouter()


api_router.include_router(production_dashboard.router)
