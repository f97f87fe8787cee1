import json
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from wiki.core.errors import ConfigurationError


# -----------------------------------------------------------------------------
# QUERY CATALOG
# Purpose: The fixed set of data operations and their parameterized statements
# Built once at startup, read-only afterwards
# -----------------------------------------------------------------------------


class SqlQuery(str, Enum):
    CREATE_TABLE = "CREATE_TABLE"
    LIST_NAMES = "LIST_NAMES"
    GET_BY_NAME = "GET_BY_NAME"
    GET_BY_ID = "GET_BY_ID"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LIST_ALL = "LIST_ALL"


DEFAULT_QUERIES: Dict[SqlQuery, str] = {
    SqlQuery.CREATE_TABLE: (
        "create table if not exists Pages "
        "(Id integer primary key, Name varchar(255) unique not null, Content text)"
    ),
    SqlQuery.LIST_NAMES: "select Name from Pages",
    SqlQuery.GET_BY_NAME: "select Id, Content from Pages where Name = :name",
    SqlQuery.GET_BY_ID: "select Id, Name, Content from Pages where Id = :id",
    SqlQuery.CREATE: "insert into Pages (Name, Content) values (:name, :content)",
    SqlQuery.UPDATE: "update Pages set Content = :content where Id = :id",
    SqlQuery.DELETE: "delete from Pages where Id = :id",
    SqlQuery.LIST_ALL: "select Id, Name, Content from Pages",
}

# Statements whose syntax differs per SQL dialect
DIALECT_QUERIES: Dict[str, Dict[SqlQuery, str]] = {
    "postgresql": {
        SqlQuery.CREATE_TABLE: (
            "create table if not exists Pages "
            "(Id serial primary key, Name varchar(255) unique not null, Content text)"
        ),
    },
}


class QueryCatalog:
    def __init__(self, queries: Mapping[SqlQuery, str]):
        missing = [q.value for q in SqlQuery if not queries.get(q)]
        if missing:
            raise ConfigurationError(
                f"SQL query catalog is missing: {', '.join(missing)}"
            )
        self._queries = MappingProxyType(dict(queries))

    def lookup(self, query: SqlQuery) -> str:
        return self._queries[query]

    def __len__(self) -> int:
        return len(self._queries)

    @classmethod
    def load(
        cls, dialect: str = "sqlite", override_file: Optional[str] = None
    ) -> "QueryCatalog":
        """
        Build the catalog from the defaults, the dialect overrides and an
        optional JSON file mapping query names to statements.

        Raises:
            ConfigurationError: unreadable override file, unknown query name,
                or a query left without a statement.
        """
        queries = dict(DEFAULT_QUERIES)
        queries.update(DIALECT_QUERIES.get(dialect, {}))

        if override_file:
            for name, statement in _read_overrides(override_file).items():
                try:
                    queries[SqlQuery(name)] = statement
                except ValueError:
                    raise ConfigurationError(f"Unknown SQL query name: {name}")

        return cls(queries)


def _read_overrides(path: str) -> Dict[str, str]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as error:
        raise ConfigurationError(f"Cannot read SQL queries file {path}", error)

    if not isinstance(data, dict):
        raise ConfigurationError(f"SQL queries file {path} must hold an object")
    return data
