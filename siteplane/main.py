# Run from project root: uvicorn siteplane.main:app --reload

import logging

from fastapi import FastAPI

from siteplane.api.handlers import register_error_handlers
from siteplane.api.routes import router
from siteplane.api.tenant import tenant_router

logging.basicConfig(level=logging.INFO)


app = FastAPI(title="Siteplane tenant site layer")
register_error_handlers(app)
app.include_router(router)
app.include_router(tenant_router, prefix="/api/tenant")
