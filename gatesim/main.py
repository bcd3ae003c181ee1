import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from gatesim.api.endpoints import auth as auth_api
from gatesim.api.endpoints import users as users_api
from gatesim.api.endpoints import packages as packages_api
from gatesim.api.endpoints import orders as orders_api
from gatesim.api.endpoints import checkout as checkout_api
from gatesim.api.endpoints import settings as settings_api
from gatesim.db.base_class import Base
from gatesim.db.session import engine
from gatesim import models # noqa: F401  registers every table on Base.metadata

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # No migrations yet; create missing tables on startup
    Base.metadata.create_all(bind=engine)
    logger.info("GateSIM API started")
    yield

app = FastAPI(title="GateSIM API", version="0.1.0", lifespan=lifespan)

# Include API routers
app.include_router(auth_api.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(users_api.router, prefix="/api/v1/users", tags=["Users"])
app.include_router(packages_api.router, prefix="/api/v1/packages", tags=["Packages"])
app.include_router(orders_api.router, prefix="/api/v1/orders", tags=["Orders"])
app.include_router(checkout_api.router, prefix="/api/v1/checkout", tags=["Checkout"])
app.include_router(settings_api.router, prefix="/api/v1/settings", tags=["Settings"])

@app.get("/ping", tags=["Health Check"])
async def ping():
    return {"message": "pong"}
