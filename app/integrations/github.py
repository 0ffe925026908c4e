from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.core.exceptions import IntegrationError
from app.schemas.provider import LiveSponsor

logger = logging.getLogger(__name__)

ACTIVE_SPONSORS_QUERY = """
query($cursor: String) {
  viewer {
    sponsorshipsAsMaintainer(first: 100, after: $cursor, activeOnly: true) {
      pageInfo { hasNextPage endCursor }
      nodes {
        id
        sponsorEntity {
          ... on User { login }
          ... on Organization { login }
        }
      }
    }
  }
}
"""

MAX_PAGES = 50


class GitHubSponsorsClient:
    """Reads the active sponsorships of the authenticated maintainer."""

    PROVIDER = "github"

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token or (settings.github_token.get_secret_value() if settings.github_token else None)
        if not self.token:
            raise IntegrationError(self.PROVIDER, "GITHUB_TOKEN is not configured")

        self.client = httpx.AsyncClient(
            base_url=(base_url or str(settings.github_api_url)).rstrip("/"),
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
            },
            timeout=settings.provider_timeout_seconds,
            transport=transport,
        )

    async def get_active_sponsors(self) -> List[LiveSponsor]:
        sponsors: List[LiveSponsor] = []
        cursor: Optional[str] = None

        for _ in range(MAX_PAGES):
            page = await self._query(cursor)
            for node in page.get("nodes") or []:
                if not node or not node.get("id"):
                    continue
                entity = node.get("sponsorEntity") or {}
                sponsors.append(LiveSponsor(id=node["id"], login=entity.get("login")))

            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
        else:
            raise IntegrationError(self.PROVIDER, f"sponsors list truncated after {MAX_PAGES} pages")

        logger.info("Fetched %s active GitHub sponsors", len(sponsors))
        return sponsors

    async def _query(self, cursor: Optional[str]) -> Dict[str, Any]:
        response = await self.client.post(
            "/graphql",
            json={"query": ACTIVE_SPONSORS_QUERY, "variables": {"cursor": cursor}},
        )
        if response.status_code != 200:
            raise IntegrationError(self.PROVIDER, f"sponsors query failed: {response.text}", response.status_code)

        body = response.json()
        if body.get("errors"):
            raise IntegrationError(self.PROVIDER, f"sponsors query returned errors: {body['errors']}")

        # A reply without the sponsorships connection is an error, never an empty list.
        viewer = (body.get("data") or {}).get("viewer") or {}
        page = viewer.get("sponsorshipsAsMaintainer")
        if not isinstance(page, dict) or not isinstance(page.get("nodes"), list):
            raise IntegrationError(self.PROVIDER, f"sponsors query returned no sponsorships: {body!r}")
        return page

    async def close(self):
        await self.client.aclose()
