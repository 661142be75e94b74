"""Identity provider HTTP client for resolving sessions to users"""

import httpx

from buho_gateway.config import settings
from buho_gateway.domain.exceptions import ProviderUnavailable
from buho_gateway.domain.models import User
from buho_gateway.infrastructure.observability.metrics import provider_latency_histogram


class IdentityClient:
    """Client for the external identity provider's session lookup"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.identity_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def resolve_current_user(self, session_token: str | None) -> User | None:
        """
        Look up the user behind a session token.

        Returns None when there is no session or the provider does not
        recognise it; being logged out is not an error.

        Raises:
            ProviderUnavailable: On timeout, network errors, 5xx, or invalid response
        """
        if not session_token:
            return None

        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            try:
                with provider_latency_histogram.labels(operation="session_get").time():
                    response = await client.get(
                        "/identity/session",
                        headers={"Authorization": f"Bearer {session_token}"},
                    )
                if response.status_code in (401, 403, 404):
                    return None
                response.raise_for_status()
                data = response.json()
                if data is None:
                    return None

                return User(id=str(data["id"]), name=data.get("name") or "", email=data.get("email") or "")

            except httpx.TimeoutException as e:
                raise ProviderUnavailable(f"Identity provider timeout after {self.timeout}s", code="TIMEOUT") from e
            except httpx.HTTPStatusError as e:
                raise ProviderUnavailable(f"Identity provider error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ProviderUnavailable(f"Identity provider unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise ProviderUnavailable(f"Invalid session data from identity provider: {e}") from e
