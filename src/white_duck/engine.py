"""DuckDB engine adapter: query execution and catalog discovery."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging
import time

import duckdb

from .errors import UnexpectedError
from .values import Value, json_type_name, normalize, to_value

logger = logging.getLogger(__name__)

# Schemas and catalogs that belong to the engine itself
SYSTEM_SCHEMAS = ("information_schema", "pg_catalog")
SYSTEM_CATALOGS = ("system", "temp")


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type}


@dataclass(frozen=True)
class QueryResult:
    """Normalized result of one statement."""

    columns: List[ColumnInfo]
    rows: List[List[Any]]
    execution_time_seconds: float

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": [c.to_dict() for c in self.columns],
            "data": self.rows,
            "rowCount": self.row_count,
            "executionTime": self.execution_time_seconds,
        }


@dataclass(frozen=True)
class TableColumn:
    name: str
    type: str
    nullable: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "nullable": self.nullable}


@dataclass
class TableInfo:
    name: str
    columns: List[TableColumn] = field(default_factory=list)
    catalog: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "columns": [c.to_dict() for c in self.columns]}


@dataclass(frozen=True)
class EngineFailure:
    """A failed engine call. ``message`` is DuckDB's diagnostic text, verbatim."""

    message: str


QueryOutcome = Union[QueryResult, EngineFailure]


def build_result(
    names: Sequence[str], raw_rows: Sequence[Sequence[Any]], execution_time: float
) -> QueryResult:
    """Tag and normalize raw rows; column types follow the normalized values."""
    tagged: List[List[Value]] = [[to_value(cell) for cell in row] for row in raw_rows]
    rows = [[normalize(v) for v in row] for row in tagged]

    columns = []
    for index, name in enumerate(names):
        column_type = "null"
        for row in rows:
            if row[index] is not None:
                column_type = json_type_name(row[index])
                break
        columns.append(ColumnInfo(name, column_type))
    return QueryResult(columns, rows, execution_time)


def split_schema_identifier(identifier: str) -> Tuple[Optional[str], str]:
    """Split ``catalog.schema`` into (catalog, schema); a bare name has no catalog."""
    if "." in identifier:
        catalog, schema = identifier.split(".", 1)
        return catalog, schema
    return None, identifier


class DuckDBEngine:
    """Manages the process-wide DuckDB connection."""

    def __init__(self, database: str = ":memory:"):
        """
        Args:
            database: Path to the database file, or ``:memory:``
        """
        self.database = database
        self._connection: Optional[duckdb.DuckDBPyConnection] = None

    def connect(self) -> None:
        """Open the database if not already open."""
        if self._connection is None:
            if self.database != ":memory:":
                Path(self.database).parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"Opening DuckDB database: {self.database}")
            self._connection = duckdb.connect(self.database)

    def get_cursor(self) -> duckdb.DuckDBPyConnection:
        """A per-call handle on the shared database."""
        if self._connection is None:
            self.connect()
        return self._connection.cursor()

    def _run(self, sql: str, params: Optional[Sequence[Any]] = None) -> Tuple[List[str], List[tuple]]:
        cursor = self.get_cursor()
        try:
            if params is None:
                cursor.execute(sql)
            else:
                cursor.execute(sql, params)
            if cursor.description is None:
                return [], []
            columns = [desc[0] for desc in cursor.description]
            return columns, cursor.fetchall()
        finally:
            cursor.close()

    def execute_query(self, sql: str) -> QueryOutcome:
        """
        Execute SQL and return a normalized result.

        Engine errors are returned as EngineFailure, never raised.
        """
        start = time.perf_counter()
        try:
            columns, raw_rows = self._run(sql)
        except duckdb.Error as e:
            logger.info(f"Query failed: {e}")
            return EngineFailure(str(e))
        execution_time = time.perf_counter() - start

        result = build_result(columns, raw_rows, execution_time)
        logger.info(
            f"Query returned {result.row_count} rows with {len(result.columns)} columns "
            f"in {execution_time:.4f}s"
        )
        return result

    def list_schemas(self) -> Union[List[str], EngineFailure]:
        """List user schemas as ``catalog.schema`` identifiers."""
        placeholders = ", ".join("?" for _ in SYSTEM_SCHEMAS)
        catalog_placeholders = ", ".join("?" for _ in SYSTEM_CATALOGS)
        sql = f"""
            SELECT catalog_name, schema_name
            FROM information_schema.schemata
            WHERE schema_name NOT IN ({placeholders})
              AND catalog_name NOT IN ({catalog_placeholders})
            ORDER BY catalog_name, schema_name
        """
        try:
            _, rows = self._run(sql, [*SYSTEM_SCHEMAS, *SYSTEM_CATALOGS])
        except duckdb.Error as e:
            logger.error(f"Error listing schemas: {e}")
            return EngineFailure(str(e))

        schemas = [f"{catalog}.{schema}" for catalog, schema in rows]
        logger.info(f"Found {len(schemas)} schemas")
        return schemas

    def list_tables(self, schema: str) -> Union[List[TableInfo], EngineFailure]:
        """
        List tables of a schema with their columns in ordinal order.

        Args:
            schema: Schema name, optionally catalog-qualified (``catalog.schema``)
        """
        catalog, schema_name = split_schema_identifier(schema)
        sql = """
            SELECT table_catalog, table_name, column_name, data_type, is_nullable
            FROM information_schema.columns
            WHERE table_schema = ?
        """
        params: List[Any] = [schema_name]
        if catalog:
            sql += " AND table_catalog = ?"
            params.append(catalog)
        else:
            sql += f" AND table_catalog NOT IN ({', '.join('?' for _ in SYSTEM_CATALOGS)})"
            params.extend(SYSTEM_CATALOGS)
        sql += " ORDER BY table_catalog, table_name, ordinal_position"

        try:
            _, rows = self._run(sql, params)
        except duckdb.Error as e:
            logger.error(f"Error listing tables in schema '{schema}': {e}")
            return EngineFailure(str(e))

        # A bare schema name can match in several catalogs
        tables: Dict[Tuple[str, str], TableInfo] = {}
        for table_catalog, table_name, column_name, data_type, is_nullable in rows:
            table = tables.setdefault(
                (table_catalog, table_name), TableInfo(table_name, catalog=table_catalog)
            )
            table.columns.append(TableColumn(column_name, data_type, is_nullable == "YES"))

        for table in tables.values():
            if not table.columns:
                raise UnexpectedError(f"Table '{table.name}' reported without columns")

        logger.info(f"Found {len(tables)} tables in schema '{schema}'")
        return list(tables.values())

    def close(self) -> None:
        """Close the connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.info("DuckDB connection closed")

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
