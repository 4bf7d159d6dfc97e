"""REST routes: login, query execution, schema discovery and saved queries."""

from typing import List, Optional
import logging

import anyio.to_thread
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from pydantic import BaseModel

from .auth import AuthorizationGate, Principal, require_auth
from .engine import DuckDBEngine, EngineFailure
from .errors import EngineError, NotFoundError, ValidationError
from .export import to_csv
from .saved_queries import SavedQueryStore

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class QueryRequest(BaseModel):
    sql: Optional[str] = None
    format: str = "json"


class SavedQueryRequest(BaseModel):
    name: Optional[str] = None
    sql: Optional[str] = None
    tags: List[str] = []


def _engine(request: Request) -> DuckDBEngine:
    return request.app.state.engine


def _gate(request: Request) -> AuthorizationGate:
    return request.app.state.gate


def _saved_queries(request: Request) -> SavedQueryStore:
    return request.app.state.saved_queries


def _raise_on_failure(outcome):
    if isinstance(outcome, EngineFailure):
        raise EngineError(outcome.message)
    return outcome


public_router = APIRouter()
router = APIRouter(dependencies=[Depends(require_auth)])


@public_router.post("/auth/login")
async def login(body: LoginRequest, gate: AuthorizationGate = Depends(_gate)):
    """Exchange username and password for a session token."""
    if not body.username or not body.password:
        raise ValidationError("Username and password required")

    principal = await anyio.to_thread.run_sync(
        gate.credentials.validate_credentials, body.username, body.password
    )
    token = gate.tokens.issue_token(principal)
    logger.info(f"Login succeeded for '{principal.username}'")
    return {"token": token, "user": principal.to_dict()}


@router.get("/auth/me")
async def me(principal: Optional[Principal] = Depends(require_auth)):
    return {"user": principal.to_dict() if principal else None}


@router.get("/auth/api-key")
async def api_key_info(request: Request):
    """Whether an API key is configured. The key itself is never returned."""
    return {"hasApiKey": bool(request.app.state.settings.api_key)}


@router.post("/query")
async def query(body: QueryRequest, engine: DuckDBEngine = Depends(_engine)):
    if not body.sql:
        raise ValidationError("SQL query is required")

    result = _raise_on_failure(await anyio.to_thread.run_sync(engine.execute_query, body.sql))

    if body.format == "csv":
        return Response(
            content=to_csv(result),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="query_result.csv"'},
        )
    return result.to_dict()


@router.get("/schemas")
async def schemas(engine: DuckDBEngine = Depends(_engine)):
    return {"schemas": _raise_on_failure(await anyio.to_thread.run_sync(engine.list_schemas))}


@router.get("/tables/{schema}")
async def tables(schema: str, engine: DuckDBEngine = Depends(_engine)):
    found = _raise_on_failure(await anyio.to_thread.run_sync(engine.list_tables, schema))
    return {"tables": [t.to_dict() for t in found]}


@router.get("/queries")
async def list_queries(store: SavedQueryStore = Depends(_saved_queries)):
    return {"queries": [q.to_dict() for q in store.list()]}


@router.post("/queries")
async def create_query(body: SavedQueryRequest, store: SavedQueryStore = Depends(_saved_queries)):
    if not body.name or not body.sql:
        raise ValidationError("Name and SQL are required")
    saved = store.create(body.name, body.sql, body.tags)
    return {"success": True, "query": saved.to_dict()}


@router.get("/queries/{query_id}")
async def get_query(query_id: str, store: SavedQueryStore = Depends(_saved_queries)):
    saved = store.get(query_id)
    if saved is None:
        raise NotFoundError("Query not found")
    return {"query": saved.to_dict()}


@router.delete("/queries/{query_id}")
async def delete_query(query_id: str, store: SavedQueryStore = Depends(_saved_queries)):
    if not store.delete(query_id):
        raise NotFoundError("Query not found")
    return {"success": True}
