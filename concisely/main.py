# concisely/main.py
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .logging_setup import setup_logging, get_logger
from .middleware import RequestContextMiddleware
from .exception_handling import register_exception_handlers
from .lifespan import lifespan

from .routers import health, users, summaries, newsletters, content
from .routers.email_admin import router as email_admin_router

setup_logging()  # <-- set up logging ASAP
logger = get_logger("concisely.main")

app = FastAPI(title="Concisely", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(health.router)
app.include_router(users.router)
app.include_router(summaries.router)
app.include_router(newsletters.router)
app.include_router(content.router)
app.include_router(email_admin_router)
