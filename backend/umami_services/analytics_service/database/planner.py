"""
Index-aware query planning for dimension breakdowns.

Breakdowns by an event dimension are served by the ``(website_id, created_at,
<dimension>)`` composite index of website_event. Session dimensions are
filtered through the event ``(website_id, created_at)`` index and joined to
the session row by primary key. Before such a query runs, the planner
inspects the live indexes of the table it enters through. When the index is
missing (dropped, never deployed, or not declared for the dimension) the
query degrades to a chunked scan that is counted in the application; the
degradation is logged and reported on the result, never hidden.

Example:
    ```python
    planner = IndexPlanner(session)
    plan = planner.plan(get_dimension("browser"))
    if plan.degraded:
        ...
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from .base import Dimension

STRATEGY_INDEX = "index_group_by"
STRATEGY_INDEX_JOIN = "index_join"
STRATEGY_SCAN = "scan"

LEADING_COLUMNS = ["website_id", "created_at"]
EVENT_TABLE = "website_event"
SESSION_JOIN = "website_event.session_id = session.session_id"


@dataclass(frozen=True)
class QueryPlan:
    """
    How a breakdown is executed.

    ``table`` is the table holding the dimension; ``index`` is the index the
    query enters through. Session dimensions enter through the event
    ``(website_id, created_at)`` index and reach the session row by primary
    key, which ``join`` records.
    """

    dimension: str
    table: str
    strategy: str
    index: str | None = None
    join: str | None = None

    @property
    def degraded(self) -> bool:
        return self.strategy == STRATEGY_SCAN

    def to_dict(self) -> dict[str, Any]:
        return {
            "dimension": self.dimension,
            "table": self.table,
            "strategy": self.strategy,
            "index": self.index,
            "join": self.join,
            "degraded": self.degraded,
        }


class IndexPlanner:
    """Chooses between an index-backed GROUP BY and a degraded scan."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self._indexes: dict[str, list[dict[str, Any]]] = {}

    def _schema(self) -> str | None:
        options = self.session.connection().get_execution_options()
        return (options.get("schema_translate_map") or {}).get(None)

    def indexes(self, table: str) -> list[dict[str, Any]]:
        """Live indexes of ``table``, read once per planner."""
        if table not in self._indexes:
            inspector = inspect(self.session.connection())
            self._indexes[table] = inspector.get_indexes(table, schema=self._schema())
        return self._indexes[table]

    def _find(self, table: str, wanted: list[str]) -> str | None:
        # Shortest match first: the plain composite over a wider covering one
        candidates = sorted(
            (index for index in self.indexes(table) if index.get("column_names")),
            key=lambda index: len(index["column_names"]),
        )
        for index in candidates:
            if list(index["column_names"])[: len(wanted)] == wanted:
                return index["name"]
        return None

    def plan(self, dimension: Dimension) -> QueryPlan:
        if dimension.is_session:
            index = self._find(EVENT_TABLE, LEADING_COLUMNS)
            if index is not None:
                return QueryPlan(
                    dimension.name, dimension.table, STRATEGY_INDEX_JOIN, index, SESSION_JOIN
                )
            logger.warning(
                f"No ({', '.join(LEADING_COLUMNS)}) index on {EVENT_TABLE}; "
                f"breakdown by {dimension.name} falls back to a scan"
            )
            return QueryPlan(dimension.name, dimension.table, STRATEGY_SCAN, join=SESSION_JOIN)

        wanted = [*LEADING_COLUMNS, dimension.name]
        index = self._find(dimension.table, wanted)
        if index is not None:
            return QueryPlan(dimension.name, dimension.table, STRATEGY_INDEX, index)

        logger.warning(
            f"No ({', '.join(wanted)}) index on {dimension.table}; "
            f"breakdown by {dimension.name} falls back to a scan"
        )
        return QueryPlan(dimension.name, dimension.table, STRATEGY_SCAN)
