"""Global exception handlers.

API paths (``/api/*``) always answer with the JSON envelope
``{"success": false, "error": ...}``; web paths redirect to the login page
when there is no session and render an error page otherwise. Internal
details never reach the client.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse

from wiki.core.errors import Unauthenticated, WikiError
from wiki.core.rendering import templates

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def is_api_request(request: Request) -> bool:
    return request.url.path.startswith(API_PREFIX)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_wiki_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _error_page(request: Request, status_code: int, message: str):
    return templates.TemplateResponse(
        request,
        "error.html",
        {"title": "Error", "status_code": status_code, "message": message},
        status_code=status_code,
    )


def _register_wiki_error_handler(app: FastAPI) -> None:
    @app.exception_handler(WikiError)
    async def wiki_error_handler(request: Request, exc: WikiError):
        if exc.http_status >= 500:
            logger.error(
                f"{exc.code} on {request.url.path}: {exc.message}",
                exc_info=exc.cause,
            )
        else:
            logger.info(f"{exc.code} on {request.url.path}: {exc.message}")

        if is_api_request(request):
            return JSONResponse(status_code=exc.http_status, content=exc.to_response())

        if isinstance(exc, Unauthenticated):
            request.session["return_url"] = request.url.path
            return RedirectResponse("/login", status_code=status.HTTP_302_FOUND)
        return _error_page(request, exc.http_status, exc.message)


def _register_validation_error_handler(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(
            f"Bad request payload on {request.url.path} from "
            f"{request.client.host if request.client else 'unknown'}: {exc.errors()}"
        )
        if is_api_request(request):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"success": False, "error": "Bad request payload"},
            )
        return _error_page(request, status.HTTP_400_BAD_REQUEST, "Bad request")


def _register_generic_error_handler(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        if is_api_request(request):
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"success": False, "error": "An unexpected error occurred"},
            )
        return _error_page(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
        )
