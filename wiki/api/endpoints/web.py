from datetime import datetime
from typing import Annotated, Optional
from urllib.parse import quote

from fastapi import APIRouter, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from wiki.api.dependencies import (
    backup_dep,
    db_dep,
    session_subject_dep,
    store_dep,
)
from wiki.core.errors import ValidationError
from wiki.core.rendering import EMPTY_PAGE_MARKDOWN, render_markdown, templates
from wiki.core.security import (
    ALL_CAPABILITIES,
    Capability,
    CredentialStore,
    Subject,
    require,
    resolve_capabilities,
)
from wiki.core.storage.proxy import WikiDatabaseProxy

router = APIRouter(tags=["Wiki"], default_response_class=HTMLResponse)


async def _render_index(
    request: Request,
    subject: Subject,
    store: CredentialStore,
    db: WikiDatabaseProxy,
    backup_url: Optional[str] = None,
):
    subject = await resolve_capabilities(store, subject, [Capability.CREATE])
    pages = await db.fetch_all_pages()
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "title": "Wiki home",
            "pages": pages,
            "canCreatePage": subject.can(Capability.CREATE),
            "username": subject.username,
            "backup_gist_url": backup_url,
        },
    )


# Home: list of pages
@router.get("/")
async def index(
    request: Request, subject: session_subject_dep, store: store_dep, db: db_dep
):
    return await _render_index(request, subject, store, db)


# Show (or start) a page
@router.get("/wiki/{page:path}")
async def page_view(
    request: Request,
    page: str,
    subject: session_subject_dep,
    store: store_dep,
    db: db_dep,
):
    subject = await resolve_capabilities(store, subject, ALL_CAPABILITIES)
    lookup = await db.fetch_page(page)

    # A missing page is not an error, it opens the editor on a blank page
    raw_content = lookup.raw_content if lookup.found else EMPTY_PAGE_MARKDOWN
    return templates.TemplateResponse(
        request,
        "page.html",
        {
            "title": page,
            "id": lookup.id if lookup.found else -1,
            "newPage": "no" if lookup.found else "yes",
            "rawContent": raw_content,
            "content": render_markdown(raw_content),
            "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "username": subject.username,
            "canCreatePage": subject.can(Capability.CREATE),
            "canSavePage": subject.can(Capability.UPDATE),
            "canDeletePage": subject.can(Capability.DELETE),
        },
    )


@router.post("/action/save")
async def save_page(
    subject: session_subject_dep,
    store: store_dep,
    db: db_dep,
    title: Annotated[str, Form()] = "",
    markdown: Annotated[str, Form()] = "",
    new_page: Annotated[str, Form(alias="newPage")] = "no",
    page_id: Annotated[Optional[int], Form(alias="id")] = None,
):
    if not title:
        raise ValidationError("Missing page title")

    if new_page == "yes":
        subject = await resolve_capabilities(store, subject, [Capability.CREATE])
        require(subject, Capability.CREATE)
        await db.create_page(title, markdown)
    else:
        if page_id is None:
            raise ValidationError("Missing page id")
        subject = await resolve_capabilities(store, subject, [Capability.UPDATE])
        require(subject, Capability.UPDATE)
        await db.save_page(page_id, markdown)

    return RedirectResponse(
        f"/wiki/{quote(title)}", status_code=status.HTTP_303_SEE_OTHER
    )


# Jump to a page by name; the page view offers to create it
@router.post("/action/create")
async def create_page(
    subject: session_subject_dep, name: Annotated[str, Form()] = ""
):
    location = f"/wiki/{quote(name)}" if name else "/"
    return RedirectResponse(location, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/action/delete")
async def delete_page(
    subject: session_subject_dep,
    store: store_dep,
    db: db_dep,
    page_id: Annotated[Optional[int], Form(alias="id")] = None,
):
    if page_id is None:
        raise ValidationError("Missing page id")

    subject = await resolve_capabilities(store, subject, [Capability.DELETE])
    require(subject, Capability.DELETE)
    await db.delete_page(page_id)
    return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)


# Snapshot every page to the backup service, then show the home page
@router.get("/action/backup")
async def backup(
    request: Request,
    subject: session_subject_dep,
    store: store_dep,
    db: db_dep,
    backup_client: backup_dep,
):
    pages = await db.fetch_all_pages_data()
    backup_url = await backup_client.backup(pages)
    return await _render_index(request, subject, store, db, backup_url=backup_url)
