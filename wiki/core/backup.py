import logging
from typing import Dict, List, Optional

import httpx

from wiki.core import schemas
from wiki.core.config import settings
from wiki.core.errors import UpstreamError

logger = logging.getLogger(__name__)


def build_backup_payload(pages: List[schemas.PageRecord]) -> Dict:
    """One file per page, keyed by page name."""
    return {
        "files": {page.name: {"content": page.content} for page in pages},
        "description": "A wiki backup",
        "public": True,
    }


class BackupClient:
    """Posts a snapshot of every page to a gist-like endpoint."""

    def __init__(
        self,
        url: str = settings.BACKUP_URL,
        token: Optional[str] = settings.BACKUP_TOKEN,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.url = url
        self.token = token
        self.transport = transport
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": settings.BACKUP_USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def backup(self, pages: List[schemas.PageRecord]) -> str:
        """
        Upload the pages and return the URL of the created backup.

        Raises:
            UpstreamError: transport failure, any status other than 201, or
                a 201 without a URL.
        """
        payload = build_backup_payload(pages)
        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=self.timeout
            ) as client:
                response = await client.post(
                    self.url, json=payload, headers=self._headers()
                )
        except httpx.HTTPError as error:
            logger.error(f"HTTP client error during backup: {error}")
            raise UpstreamError("Could not reach the backup service", error)

        if response.status_code != 201:
            logger.error(
                f"Could not backup the wiki: {response.status_code} {response.text}"
            )
            raise UpstreamError(
                f"Could not backup the wiki: {response.reason_phrase or response.status_code}"
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        url = body.get("html_url") if isinstance(body, dict) else None
        if not url:
            logger.error("Backup service answered 201 without a URL")
            raise UpstreamError("Backup service returned no URL")
        return url
