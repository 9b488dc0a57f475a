from fastapi import APIRouter
from wpforge.api.v1.endpoints import websites

router = APIRouter()
router.include_router(websites.router)
