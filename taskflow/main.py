import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import inspect
from taskflow import mailer
from taskflow.config import config
from taskflow.database import engine, Base
from taskflow.routes import router
from taskflow.routes.prometheus import metrics_middleware

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# =========================================================
# FASTAPI APP
# =========================================================

app = FastAPI(title="TaskFlow API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,      # session cookie
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register Prometheus middleware
app.middleware("http")(metrics_middleware)

# Include API Router
app.include_router(router)

# =========================================================
# AUTO-CREATE TABLES ON STARTUP
# =========================================================
@app.on_event("startup")
def init_database():
    existing_tables = inspect(engine).get_table_names()
    Base.metadata.create_all(bind=engine)
    created = sorted(set(Base.metadata.tables) - set(existing_tables))
    if created:
        logger.info(f"Created tables: {created}")
    else:
        logger.info("All tables already exist")

@app.on_event("shutdown")
def shutdown_email_dispatcher():
    mailer.get_dispatcher().shutdown()


def run():
    import uvicorn
    uvicorn.run("taskflow.main:app", host="0.0.0.0", port=8000)
