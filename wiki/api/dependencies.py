from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from wiki.core.backup import BackupClient
from wiki.core.errors import Unauthenticated
from wiki.core.runtime import WikiRuntime
from wiki.core.security import (
    CredentialStore,
    Subject,
    TokenAuth,
    resolve_capabilities,
)
from wiki.core.storage.proxy import WikiDatabaseProxy


def get_runtime(request: Request) -> WikiRuntime:
    return request.app.state.runtime


runtime_dep = Annotated[WikiRuntime, Depends(get_runtime)]


def get_database(runtime: runtime_dep) -> WikiDatabaseProxy:
    return runtime.proxy


def get_credential_store(runtime: runtime_dep) -> CredentialStore:
    return runtime.credentials


def get_token_auth(runtime: runtime_dep) -> TokenAuth:
    return runtime.tokens


def get_backup_client(runtime: runtime_dep) -> BackupClient:
    return runtime.backup


db_dep = Annotated[WikiDatabaseProxy, Depends(get_database)]
store_dep = Annotated[CredentialStore, Depends(get_credential_store)]
tokens_dep = Annotated[TokenAuth, Depends(get_token_auth)]
backup_dep = Annotated[BackupClient, Depends(get_backup_client)]

# tokenUrl="api/token" if you don't have a token yet, go to this address to get one
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/token", auto_error=False)


# Decode the token and resolve what its holder may do
async def get_token_subject(
    token: Annotated[Optional[str], Depends(oauth2_scheme)], tokens: tokens_dep
) -> Subject:
    subject = await tokens.authenticate({"token": token})
    return await resolve_capabilities(tokens, subject)


# Find the user behind the session cookie; capabilities are resolved per route
async def get_session_subject(request: Request, store: store_dep) -> Subject:
    username = request.session.get("username")
    if not username:
        raise Unauthenticated("Login required")

    try:
        return await store.load_subject(username)
    except Unauthenticated:
        request.session.clear()
        raise


token_subject_dep = Annotated[Subject, Depends(get_token_subject)]
session_subject_dep = Annotated[Subject, Depends(get_session_subject)]
