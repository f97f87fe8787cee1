from typing import Annotated

from fastapi import APIRouter, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from wiki.api.dependencies import store_dep
from wiki.core.errors import Unauthenticated
from wiki.core.rendering import templates

router = APIRouter(tags=["Session"], default_response_class=HTMLResponse)


@router.get("/login")
async def login_page(request: Request):
    return templates.TemplateResponse(request, "login.html", {"title": "Login"})


@router.post("/login-auth")
async def login(
    request: Request,
    store: store_dep,
    username: Annotated[str, Form()] = "",
    password: Annotated[str, Form()] = "",
):
    try:
        subject = await store.authenticate({"username": username, "password": password})
    except Unauthenticated as error:
        return templates.TemplateResponse(
            request,
            "login.html",
            {"title": "Login", "error": error.message},
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    request.session["username"] = subject.username
    return_url = request.session.pop("return_url", "/")
    return RedirectResponse(return_url, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/logout")
async def logout(request: Request):
    request.session.clear()
    return RedirectResponse("/", status_code=status.HTTP_302_FOUND)
