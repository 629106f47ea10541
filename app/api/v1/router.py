from fastapi import APIRouter

from app.api.v1.endpoints import pack_labels


api_router = APIRouter(prefix="/api/v1")

api_router.include_router(
    pack_labels.router,
    prefix="/pack-labels",
    tags=["Pack Labels"]
)
