"""
This module implements the admin API,
handling authentication, schema management and on-demand pipeline runs.
"""

# =====================
# Imports and Global Setup
# =====================
import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Depends, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from dotenv import load_dotenv

from entities.config_models import PipelineSettings
from ingestion.errors import ConfigurationError, IngestionError
from ingestion.pipelines import PIPELINES
from ingestion.settings import load_settings, require_embedding_key
from ingestion.store import PostgresStore

# Load environment variables and configure logging
load_dotenv()
logging.basicConfig(level=logging.INFO)

# Security and JWT configuration
SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 30

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "---")
ADMIN_FULL_NAME = os.getenv("ADMIN_FULL_NAME", "---")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "---")

admin_users_db: Dict[str, Dict[str, Any]] = {
    ADMIN_USERNAME: {
        "username": ADMIN_USERNAME,
        "full_name": ADMIN_FULL_NAME,
        "email": ADMIN_EMAIL,
        "hashed_password": pwd_context.hash(ADMIN_PASSWORD),
        "disabled": False
    }
}

app = FastAPI(title="Entity ingestion admin")

# =====================
# Dependencies
# =====================

def get_settings() -> PipelineSettings:
    """
    Loads pipeline settings; configuration problems become HTTP 400.
    """
    try:
        return load_settings(needs_embeddings=False)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def get_admin_store(settings: PipelineSettings = Depends(get_settings)) -> PostgresStore:
    """
    Returns the Postgres store used for schema management.
    """
    if settings.store.backend != "postgres":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Schema management requires STORE_BACKEND=postgres"
        )
    return PostgresStore(settings.store.dsn)


def get_pipeline_runners() -> Dict[str, Callable[..., Any]]:
    return PIPELINES

# =====================
# Authentication and JWT
# =====================

ADMIN_SCOPE = "ingest:admin"


def authenticate_user(username: str, password: str) -> Optional[Dict[str, Any]]:
    """
    Returns the admin record for valid credentials, None otherwise.
    """
    user = admin_users_db.get(username)
    if user is None or not pwd_context.verify(password, user["hashed_password"]):
        logging.warning("Rejected admin login for %r", username)
        return None
    return user

def create_access_token(username: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Issues an admin-scoped JWT for the given user.
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {"sub": username, "scope": ADMIN_SCOPE, "exp": expire}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)

async def get_current_user(token: str = Depends(oauth2_scheme)) -> Dict[str, Any]:
    """
    Resolves the admin behind a bearer token; tokens without the admin scope are refused.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise credentials_exception from exc
    if payload.get("scope") != ADMIN_SCOPE:
        raise credentials_exception
    user = admin_users_db.get(payload.get("sub"))
    if user is None:
        raise credentials_exception
    return user

async def get_current_active_user(current_user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if current_user.get("disabled"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User is disabled"
        )
    return current_user

@app.post("/token")
async def login(form_data: OAuth2PasswordRequestForm = Depends()):
    """
    Exchanges admin credentials for a bearer token.
    """
    user = authenticate_user(form_data.username, form_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return {"access_token": create_access_token(user["username"]), "token_type": "bearer"}

# =====================
# Pipeline Endpoints
# =====================

@app.post("/ingest/{pipeline}")
def ingest(
    pipeline: str,
    current_user: dict = Depends(get_current_active_user),
    settings: PipelineSettings = Depends(get_settings),
    runners: Dict[str, Callable[..., Any]] = Depends(get_pipeline_runners),
):
    """
    Runs a pipeline synchronously and returns its summary.
    """
    runner = runners.get(pipeline)
    if runner is None:
        raise HTTPException(status_code=404, detail=f"Unknown pipeline '{pipeline}'")
    try:
        if pipeline == "investor" or settings.embeddings_enabled:
            require_embedding_key(settings)
        summary = runner(settings)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except IngestionError as exc:
        logging.error("Pipeline %s failed: %s", pipeline, exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"message": f"Pipeline {pipeline} completed", "summary": summary.as_dict()}

#####################################
# Schema Management
#####################################

@app.post("/admin/create_tables")
def create_tables(
    current_user: dict = Depends(get_current_active_user),
    settings: PipelineSettings = Depends(get_settings),
    store: PostgresStore = Depends(get_admin_store),
):
    """
    Creates the pgvector extension and the company/investor tables with their embedding tables.
    """
    try:
        store.create_schema(dimension=settings.embedding.dimension)
    except IngestionError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"message": "Tables created successfully"}

@app.delete("/admin/delete_data")
def delete_data(
    current_user: dict = Depends(get_current_active_user),
    store: PostgresStore = Depends(get_admin_store),
):
    """
    Deletes all entity rows; embeddings are removed with them.
    """
    try:
        store.truncate()
    except IngestionError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"message": "Data deleted successfully"}

@app.delete("/admin/delete_tables")
def delete_tables(
    current_user: dict = Depends(get_current_active_user),
    store: PostgresStore = Depends(get_admin_store),
):
    """
    Drops the entity and embedding tables.
    """
    try:
        store.drop_schema()
    except IngestionError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"message": "Tables dropped successfully"}
