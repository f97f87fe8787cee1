import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware
import alembic.config
import alembic.command
from wiki.core.config import settings
from wiki.core.database import engine
from wiki.core.runtime import WikiRuntime
from wiki.api.errors import register_error_handlers
from wiki.api.router import api_router

logger = logging.getLogger(__name__)


def run_migrations():
    """Sync function to run migrations"""
    alembic_cfg = alembic.config.Config("alembic.ini")
    alembic.command.upgrade(alembic_cfg, "head")


# Deploy the database worker and its proxy, tear them down and close the engine at shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.LOG_LEVEL)

    # Apply any pending migrations (users table) automatically when the app starts
    try:
        await asyncio.to_thread(run_migrations)
        logger.info("Migrations applied successfully (or already up-to-date)")
    except Exception as e:
        logger.error(f"Migration error during startup: {e}")

    runtime = WikiRuntime()
    await runtime.start()
    app.state.runtime = runtime

    yield
    await runtime.stop()
    await engine.dispose()


app = FastAPI(title="Wiki", lifespan=lifespan)

app.add_middleware(SessionMiddleware, secret_key=settings.SESSION_SECRET)
register_error_handlers(app)

# Include the master router containing all our endpoints
app.include_router(api_router)
