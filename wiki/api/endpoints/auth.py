from typing import Annotated, Optional

from fastapi import APIRouter, Header, status
from fastapi.responses import PlainTextResponse

from wiki.api.dependencies import store_dep, tokens_dep
from wiki.core.security import ALL_CAPABILITIES, resolve_capabilities

router = APIRouter(prefix="/api", tags=["Authentication"])


@router.get(
    "/token", response_class=PlainTextResponse, status_code=status.HTTP_200_OK
)
async def issue_token(
    store: store_dep,
    tokens: tokens_dep,
    login: Annotated[Optional[str], Header()] = None,
    password: Annotated[Optional[str], Header()] = None,
):
    subject = await store.authenticate({"username": login, "password": password})

    # create, update and delete are checked together, the token carries all three
    subject = await resolve_capabilities(store, subject, ALL_CAPABILITIES)
    return tokens.generate_token(subject)
