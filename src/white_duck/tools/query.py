"""Query tool for executing SQL."""

from typing import Any, Dict, Union
import logging

from ..engine import DuckDBEngine, EngineFailure

logger = logging.getLogger(__name__)

INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "sql": {
            "type": "string",
            "minLength": 1,
            "description": "SQL query to execute (e.g. SELECT * FROM table LIMIT 10)",
        }
    },
    "required": ["sql"],
    "additionalProperties": False,
}


def execute_sql(engine: DuckDBEngine, sql: str) -> Union[Dict[str, Any], EngineFailure]:
    """
    Execute a SQL query against DuckDB and return the normalized result.

    Args:
        engine: Engine to run the statement on
        sql: SQL query to execute

    Returns:
        Dictionary with columns, data, rowCount and executionTime, or the engine failure
    """
    outcome = engine.execute_query(sql)
    if isinstance(outcome, EngineFailure):
        logger.error(f"Error executing query: {outcome.message}")
        return outcome
    logger.debug(f"Query returned {outcome.row_count} rows with {len(outcome.columns)} columns")
    return outcome.to_dict()
