from fastapi import FastAPI, APIRouter
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from bootstrap import ensure_schema
from routers import auth_users, programs, public, registrations

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

app = FastAPI(title="PanelEvent API", version="1.0.0")
api_router = APIRouter(prefix="/api")

api_router.include_router(public.router)
api_router.include_router(auth_users.router)
api_router.include_router(programs.router)
api_router.include_router(registrations.router)
app.include_router(api_router)

cors_origins = [origin.strip() for origin in os.environ.get("CORS_ORIGINS", "*").split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_credentials=cors_origins != ["*"],
    allow_origins=cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After"],
)


# ==================== STARTUP ====================
@app.on_event("startup")
def startup_event():
    if os.environ.get("AUTO_CREATE_SCHEMA", "true").strip().lower() in {"1", "true", "yes", "on"}:
        ensure_schema()
        logger.info("Database schema ensured")
