from typing import Any, List, Tuple


class QueryBuilder:
    """
    Appends WHERE predicates to a base SELECT while keeping asyncpg's
    positional placeholders ($1, $2, ...) and the bound values in lockstep.

    Predicates are written by the caller with '{}' where each value goes;
    values are never interpolated into the SQL text.

        builder = QueryBuilder("SELECT * FROM blocks b", [])
        builder.where("b.department_id = {}", department_id)
        query, params = builder.build()
    """

    def __init__(self, base_query: str, params: List[Any] = None):
        self._base_query = base_query.rstrip()
        self._params: List[Any] = list(params or [])
        self._predicates: List[str] = []
        self._order_by: List[str] = []

    def bind(self, value: Any) -> str:
        """Registers a value and returns the placeholder that refers to it."""
        self._params.append(value)
        return f"${len(self._params)}"

    def where(self, predicate: str, *values: Any) -> "QueryBuilder":
        placeholders = [self.bind(value) for value in values]
        self._predicates.append(predicate.format(*placeholders))
        return self

    def where_if(self, condition: bool, predicate: str, *values: Any) -> "QueryBuilder":
        if condition:
            self.where(predicate, *values)
        return self

    def order_by(self, *columns: str) -> "QueryBuilder":
        self._order_by.extend(columns)
        return self

    def build(self) -> Tuple[str, List[Any]]:
        query = self._base_query
        if self._predicates:
            query += "\nWHERE " + "\n  AND ".join(self._predicates)
        if self._order_by:
            query += "\nORDER BY " + ", ".join(self._order_by)
        return query, list(self._params)
