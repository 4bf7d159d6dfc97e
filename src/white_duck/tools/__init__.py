"""Tool definitions exposed to agents over the tool protocol."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, Union

from mcp.types import Tool

from ..engine import DuckDBEngine, EngineFailure
from . import discovery, query

ToolOutcome = Union[Dict[str, Any], EngineFailure]


@dataclass(frozen=True)
class ToolDefinition:
    """A named operation with a discovery description and an input JSON Schema."""

    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: Callable[..., ToolOutcome]

    def to_tool(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema)

    def invoke(self, engine: DuckDBEngine, arguments: Dict[str, Any]) -> ToolOutcome:
        return self.handler(engine, **arguments)


TOOLS: Tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="execute_sql",
        description=(
            "Execute a read-only SQL query against the DuckDB database. "
            "Prefer SELECT; avoid writes in shared environments."
        ),
        input_schema=query.INPUT_SCHEMA,
        handler=query.execute_sql,
    ),
    ToolDefinition(
        name="list_schemas",
        description="List all database schemas (excluding system schemas).",
        input_schema=discovery.LIST_SCHEMAS_INPUT_SCHEMA,
        handler=discovery.list_schemas,
    ),
    ToolDefinition(
        name="list_tables",
        description=(
            "List tables and their columns for a given schema. "
            'Use list_schemas first to get schema names (e.g. "memory.main").'
        ),
        input_schema=discovery.LIST_TABLES_INPUT_SCHEMA,
        handler=discovery.list_tables,
    ),
)


def get_tool(name: str) -> Optional[ToolDefinition]:
    for tool in TOOLS:
        if tool.name == name:
            return tool
    return None
