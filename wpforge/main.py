# wpforge/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from wpforge.api.v1.api import router as api_router
from wpforge.core.config import settings

app = FastAPI(title=settings.PROJECT_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Ensure tables exist (no migrations yet)
@app.on_event("startup")
def on_startup():
    from wpforge.db.session import engine
    from wpforge.db.models.website import Base
    Base.metadata.create_all(bind=engine)


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok"}


app.include_router(api_router, prefix=settings.API_V1_PREFIX)
