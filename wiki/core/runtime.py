import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from wiki.core.backup import BackupClient
from wiki.core.bus.channel import Channel
from wiki.core.bus.worker import ServiceWorker
from wiki.core.config import settings
from wiki.core.database import AsyncSessionLocal, ConnectionScope, engine
from wiki.core.security import CredentialStore, TokenAuth
from wiki.core.storage.proxy import WikiDatabaseProxy
from wiki.core.storage.queries import QueryCatalog
from wiki.core.storage.service import WikiDatabaseService

logger = logging.getLogger(__name__)


class WikiRuntime:
    """
    Everything the request handlers talk to.

    The database service lives behind a service worker on the channel; the
    handlers only ever see ``proxy``. Startup order matters: the worker must
    be listening before the proxy sends anything.
    """

    def __init__(
        self,
        db_engine: AsyncEngine = engine,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        channel: Optional[Channel] = None,
        backup: Optional[BackupClient] = None,
        token_auth: Optional[TokenAuth] = None,
        proxy_timeout: float = settings.PROXY_TIMEOUT_SECONDS,
    ):
        self.engine = db_engine
        self.channel = channel or Channel()
        self.credentials = CredentialStore(session_factory)
        self.tokens = token_auth or TokenAuth()
        self.backup = backup or BackupClient()
        self.proxy_timeout = proxy_timeout

        self.scope: Optional[ConnectionScope] = None
        self.database: Optional[WikiDatabaseService] = None
        self.worker: Optional[ServiceWorker] = None
        self.proxy: Optional[WikiDatabaseProxy] = None

    async def start(self) -> None:
        # A broken catalog is a configuration error: fail startup
        queries = QueryCatalog.load(self.engine.dialect.name, settings.SQL_QUERIES_FILE)

        self.scope = ConnectionScope(self.engine)
        self.database = WikiDatabaseService(self.scope, queries)
        await self.database.initialize()

        self.worker = ServiceWorker(
            self.channel,
            settings.WIKIDB_QUEUE,
            self.database,
            WikiDatabaseService.EXPOSED,
        )
        await self.worker.start()

        self.proxy = WikiDatabaseProxy(
            self.channel, settings.WIKIDB_QUEUE, self.proxy_timeout
        )
        await self.proxy.start()
        logger.info("Wiki database service deployed")

    async def stop(self) -> None:
        if self.proxy is not None:
            await self.proxy.stop()
        if self.worker is not None:
            await self.worker.stop()
        logger.info("Wiki database service stopped")
