from fastapi import APIRouter
from wiki.api.endpoints import auth, pages, session, web

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(auth.router)
api_router.include_router(pages.router)
api_router.include_router(session.router)
api_router.include_router(web.router)
