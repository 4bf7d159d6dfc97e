"""Discovery tools for exploring schemas and tables."""

from typing import Any, Dict, Union

from ..engine import DuckDBEngine, EngineFailure

LIST_SCHEMAS_INPUT_SCHEMA = {
    "type": "object",
    "properties": {},
    "additionalProperties": False,
}

LIST_TABLES_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "schema": {
            "type": "string",
            "minLength": 1,
            "description": 'Schema name (e.g. "main" or "memory.main")',
        }
    },
    "required": ["schema"],
    "additionalProperties": False,
}


def list_schemas(engine: DuckDBEngine) -> Union[Dict[str, Any], EngineFailure]:
    """List all database schemas, excluding system schemas."""
    schemas = engine.list_schemas()
    if isinstance(schemas, EngineFailure):
        return schemas
    return {"schemas": schemas}


def list_tables(engine: DuckDBEngine, schema: str) -> Union[Dict[str, Any], EngineFailure]:
    """
    List tables of a schema with their columns.

    Args:
        engine: Engine to inspect
        schema: Schema name, optionally catalog-qualified

    Returns:
        Dictionary with the list of tables, or the engine failure
    """
    tables = engine.list_tables(schema)
    if isinstance(tables, EngineFailure):
        return tables
    return {"tables": [t.to_dict() for t in tables]}
