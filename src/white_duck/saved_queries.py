"""In-memory store of named SQL queries."""

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional
import uuid


@dataclass
class SavedQuery:
    id: str
    name: str
    sql: str
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class SavedQueryStore:
    """Process-local store; contents are lost on restart."""

    def __init__(self):
        self._queries: Dict[str, SavedQuery] = {}

    def list(self) -> List[SavedQuery]:
        return list(self._queries.values())

    def create(self, name: str, sql: str, tags: Optional[List[str]] = None) -> SavedQuery:
        query = SavedQuery(str(uuid.uuid4()), name, sql, list(tags or []))
        self._queries[query.id] = query
        return query

    def get(self, query_id: str) -> Optional[SavedQuery]:
        return self._queries.get(query_id)

    def delete(self, query_id: str) -> bool:
        return self._queries.pop(query_id, None) is not None
