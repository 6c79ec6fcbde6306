"""HTTP client for the user directory (public profiles and contact lists)."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from wellness_messaging.config import DIRECTORY_BASE_URL, DIRECTORY_TIMEOUT_SECONDS
from wellness_messaging.exceptions import NotFoundError, UpstreamUnavailableError
from wellness_messaging.schemas.user import Profile
from wellness_messaging.utils.request_context import bearer_token_var

logger = logging.getLogger(__name__)


class DirectoryClient:

    def __init__(
        self,
        base_url: str = DIRECTORY_BASE_URL,
        timeout_seconds: float = DIRECTORY_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def resolve_profile(self, user_id: int) -> Profile:
        data = await self._get(f"/perfil-publico/{user_id}", what=f"profile {user_id}")
        return Profile.model_validate(data)

    async def list_contacts(self, user_id: int) -> List[Profile]:
        data = await self._get(f"/{user_id}/contacts", what=f"contacts of {user_id}")
        return [Profile.model_validate(item) for item in data or []]

    async def _get(self, path: str, *, what: str) -> Any:
        headers: Dict[str, str] = {"Accept": "application/json"}
        token = bearer_token_var.get()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self._base_url}{path}"
        try:
            resp = await self._client.get(url, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("Directory timeout fetching %s", what)
            raise UpstreamUnavailableError(f"User directory timed out fetching {what}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Directory transport error fetching %s: %s", what, exc)
            raise UpstreamUnavailableError(f"User directory unreachable fetching {what}") from exc

        if resp.status_code == 404:
            raise NotFoundError(f"User directory has no {what}")
        if resp.status_code >= 400:
            logger.warning("Directory returned %s for %s", resp.status_code, what)
            raise UpstreamUnavailableError(f"User directory returned {resp.status_code} for {what}")
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamUnavailableError(f"User directory sent invalid JSON for {what}") from exc
