import logging
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.models import Base  # noqa: F401 - register models
from app.routers import admin, devices, health, sessions

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="POS Device Gate API",
    description="Device-bound session authentication for shared POS terminals",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/health")
# before the device router so /device/sessions is not taken as a device id
app.include_router(sessions.router, prefix="/device/sessions")
app.include_router(devices.router, prefix="/device")
app.include_router(admin.router, prefix="/admin")


@app.on_event("startup")
async def startup():
    # Seed the initial administrator if none exists
    from app.core.database import SessionLocal
    from app.core.security import get_password_hash
    from app.models.admin_user import AdminUser
    db = SessionLocal()
    try:
        if db.query(AdminUser).first() is None:
            admin = AdminUser(
                id=str(uuid.uuid4()),
                username=settings.INITIAL_ADMIN_USERNAME,
                hashed_password=get_password_hash(settings.INITIAL_ADMIN_PASSWORD),
            )
            db.add(admin)
            db.commit()
            logger.info("Seeded initial admin user %s", admin.username)
    finally:
        db.close()
