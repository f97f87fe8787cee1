from typing import List

from pydantic import TypeAdapter

from wiki.core import schemas
from wiki.core.bus.proxy import ServiceProxy

_names = TypeAdapter(List[str])
_records = TypeAdapter(List[schemas.PageRecord])


class WikiDatabaseProxy(ServiceProxy):
    """Same surface as WikiDatabaseService, served over the channel."""

    async def fetch_all_pages(self) -> List[str]:
        return _names.validate_python(await self.invoke("fetch_all_pages"))

    async def fetch_page(self, name: str) -> schemas.PageLookup:
        return schemas.PageLookup.model_validate(await self.invoke("fetch_page", name))

    async def fetch_page_by_id(self, page_id: int) -> schemas.PageById:
        return schemas.PageById.model_validate(
            await self.invoke("fetch_page_by_id", page_id)
        )

    async def create_page(self, title: str, markdown: str) -> None:
        await self.invoke("create_page", title, markdown)

    async def save_page(self, page_id: int, markdown: str) -> None:
        await self.invoke("save_page", page_id, markdown)

    async def delete_page(self, page_id: int) -> None:
        await self.invoke("delete_page", page_id)

    async def fetch_all_pages_data(self) -> List[schemas.PageRecord]:
        return _records.validate_python(await self.invoke("fetch_all_pages_data"))
