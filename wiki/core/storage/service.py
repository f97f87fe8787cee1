import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Result
from sqlalchemy.exc import SQLAlchemyError

from wiki.core import schemas
from wiki.core.database import ConnectionScope
from wiki.core.errors import PageNotFound, StorageError
from wiki.core.storage.queries import QueryCatalog, SqlQuery

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# DATA SERVICE
# Purpose: Page CRUD against the query catalog, one pooled connection per call
# Every engine failure leaves this module as a StorageError
# -----------------------------------------------------------------------------


class WikiDatabaseService:
    """Async CRUD over the Pages table.

    Methods listed in ``EXPOSED`` are the ones a service worker may call on
    behalf of a remote proxy.
    """

    EXPOSED = frozenset(
        {
            "fetch_all_pages",
            "fetch_page",
            "fetch_page_by_id",
            "create_page",
            "save_page",
            "delete_page",
            "fetch_all_pages_data",
        }
    )

    def __init__(self, scope: ConnectionScope, queries: QueryCatalog):
        self.scope = scope
        self.queries = queries

    async def initialize(self) -> None:
        """Create the pages table if it does not exist yet."""
        await self._write(SqlQuery.CREATE_TABLE)

    async def fetch_all_pages(self) -> List[str]:
        result = await self._read(SqlQuery.LIST_NAMES)
        return sorted(row[0] for row in result)

    async def fetch_page(self, name: str) -> schemas.PageLookup:
        rows = await self._read(SqlQuery.GET_BY_NAME, {"name": name})
        if not rows:
            return schemas.PageLookup(found=False)
        page_id, content = rows[0]
        return schemas.PageLookup(found=True, id=page_id, raw_content=content)

    async def fetch_page_by_id(self, page_id: int) -> schemas.PageById:
        rows = await self._read(SqlQuery.GET_BY_ID, {"id": page_id})
        if not rows:
            return schemas.PageById(found=False)
        row_id, name, content = rows[0]
        return schemas.PageById(found=True, id=row_id, name=name, content=content)

    async def create_page(self, title: str, markdown: str) -> None:
        await self._write(SqlQuery.CREATE, {"name": title, "content": markdown})

    async def save_page(self, page_id: int, markdown: str) -> None:
        affected = await self._write(
            SqlQuery.UPDATE, {"content": markdown, "id": page_id}
        )
        # An update that touched nothing is a missing page, not a success
        if affected == 0:
            raise PageNotFound.with_id(page_id)

    async def delete_page(self, page_id: int) -> None:
        # Idempotent: deleting a missing id is not a failure here
        await self._write(SqlQuery.DELETE, {"id": page_id})

    async def fetch_all_pages_data(self) -> List[schemas.PageRecord]:
        rows = await self._read(SqlQuery.LIST_ALL)
        return [
            schemas.PageRecord(id=row_id, name=name, content=content or "")
            for row_id, name, content in rows
        ]

    # =========================
    # Helpers
    # =========================
    async def _read(
        self, query: SqlQuery, params: Optional[Dict[str, Any]] = None
    ) -> List[Any]:
        async with self.scope.lease() as conn:
            try:
                result: Result = await conn.execute(
                    text(self.queries.lookup(query)), params or {}
                )
                return list(result.all())
            except SQLAlchemyError as error:
                logger.error(f"Database query error ({query.value}): {error}")
                raise StorageError(f"Database query failed: {query.value}", error)

    async def _write(
        self, query: SqlQuery, params: Optional[Dict[str, Any]] = None
    ) -> int:
        async with self.scope.lease() as conn:
            try:
                async with conn.begin():
                    result = await conn.execute(
                        text(self.queries.lookup(query)), params or {}
                    )
                return result.rowcount
            except SQLAlchemyError as error:
                logger.error(f"Database update error ({query.value}): {error}")
                raise StorageError(f"Database update failed: {query.value}", error)
