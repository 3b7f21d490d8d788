from fastapi import FastAPI
from shared.config.database import engine, Base

# IMPORTANT: import models so they register with Base
from services.product_service import models as product_models
from services.order_service import models as order_models

from services.order_service.main import order_app

app = FastAPI(title="Storefront")

@app.on_event("startup")
async def startup_event():
    # Local runs only; production schema is owned by the storefront database
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

app.mount("/orders", order_app)
