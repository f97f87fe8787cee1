from fastapi import APIRouter, status

from wiki.api.dependencies import db_dep, token_subject_dep
from wiki.core import schemas
from wiki.core.errors import PageNotFound
from wiki.core.rendering import render_markdown
from wiki.core.security import Capability, require

router = APIRouter(prefix="/api", tags=["Pages API"])


# Page list
@router.get("/pages", status_code=status.HTTP_200_OK)
async def list_pages(subject: token_subject_dep, db: db_dep):
    pages = await db.fetch_all_pages_data()
    return {
        "success": True,
        "pages": [schemas.PageSummary(id=page.id, name=page.name) for page in pages],
    }


# Get one page, as markdown and rendered html
@router.get("/pages/{page_id}", status_code=status.HTTP_200_OK)
async def get_page(page_id: int, subject: token_subject_dep, db: db_dep):
    page = await db.fetch_page_by_id(page_id)
    if not page.found:
        raise PageNotFound.with_id(page_id)

    return {
        "success": True,
        "page": schemas.PageDetail(
            id=page.id,
            name=page.name,
            markdown=page.content or "",
            html=render_markdown(page.content or ""),
        ),
    }


# Add page
@router.post("/pages", status_code=status.HTTP_201_CREATED)
async def create_page(
    page: schemas.PageCreate, subject: token_subject_dep, db: db_dep
):
    require(subject, Capability.CREATE)
    await db.create_page(page.name, page.markdown)
    return {"success": True}


# Replace page content
@router.put("/pages/{page_id}", status_code=status.HTTP_200_OK)
async def update_page(
    page_id: int, page: schemas.PageUpdate, subject: token_subject_dep, db: db_dep
):
    require(subject, Capability.UPDATE)
    await db.save_page(page_id, page.markdown)
    return {"success": True}


# Delete page
@router.delete("/pages/{page_id}", status_code=status.HTTP_200_OK)
async def delete_page(page_id: int, subject: token_subject_dep, db: db_dep):
    require(subject, Capability.DELETE)
    await db.delete_page(page_id)
    return {"success": True}
