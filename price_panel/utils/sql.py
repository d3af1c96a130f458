"""
SQL text helpers for the lake scans and remote queries
"""
from typing import Iterable, List, Optional


def sql_quote(value) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def sql_in_list(values: Iterable) -> str:
    return ", ".join(sql_quote(v) for v in values)


def build_select(select_clause: str, table: str, where_conditions: List[str],
                 order_by: Optional[str] = None, limit: Optional[int] = None) -> str:
    query = f"SELECT {select_clause} FROM `{table}`"
    if where_conditions:
        query += " WHERE " + " AND ".join(where_conditions)
    if order_by:
        query += f" ORDER BY {order_by}"
    if limit:
        query += f" LIMIT {limit}"
    return query
