"""Client lookup tool.

Client records live outside this service; a ClientDirectory adapter
fetches them. Ownership is enforced here against the caller identity
injected by the invoker.
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol

import httpx

from juris.core.config import settings
from juris.core.exceptions import PermissionDeniedError, ProviderError
from juris.services.tools.base import CALLER_PARAMETER, ToolCapability

CLIENT_NOT_ACCESSIBLE = "Cliente não encontrado ou sem permissão de acesso"


class ClientDirectory(Protocol):
    """Read access to client records.

    ``get_client`` returns the record (including ``owner_id``) or None.
    """

    async def get_client(self, client_id: str) -> dict[str, Any] | None: ...


class GetClientDetailsTool(ToolCapability):
    function_name = "get_client_details"
    description = (
        "Obtém detalhes completos de um cliente específico pelo ID. Retorna "
        "informações do cliente, endereços, contatos e contagem de processos."
    )
    parameters_schema = {
        "type": "object",
        "properties": {
            "client_id": {
                "type": "string",
                "minLength": 1,
                "description": "ID do cliente a buscar",
            },
        },
        "required": ["client_id"],
    }
    requires_auth = True

    def __init__(self, directory: ClientDirectory) -> None:
        self.directory = directory

    async def execute(self, parameters: dict[str, Any]) -> dict[str, Any]:
        user_id: uuid.UUID = parameters[CALLER_PARAMETER]
        client = await self.directory.get_client(parameters["client_id"])

        # Missing and foreign clients are indistinguishable to the caller
        if client is None or str(client.get("owner_id")) != str(user_id):
            raise PermissionDeniedError(CLIENT_NOT_ACCESSIBLE)

        return {key: value for key, value in client.items() if key != "owner_id"}


class HttpClientDirectory:
    """ClientDirectory backed by the practice-management REST API.

    ``GET {base_url}/clients/{client_id}`` returning the client record;
    404 means the client does not exist.
    """

    def __init__(self, base_url: str, timeout: float | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.CLIENT_DIRECTORY_TIMEOUT_SECONDS
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def get_client(self, client_id: str) -> dict[str, Any] | None:
        client = await self._get_client()
        try:
            response = await client.get(f"/clients/{client_id}")
        except httpx.HTTPError as e:
            raise ProviderError(f"Client directory request failed: {e}") from e

        if response.status_code == 404:
            return None
        if not response.is_success:
            raise ProviderError(
                f"Client directory returned {response.status_code}",
                retriable=response.status_code >= 500,
            )
        return response.json()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = [
    "CLIENT_NOT_ACCESSIBLE",
    "ClientDirectory",
    "GetClientDetailsTool",
    "HttpClientDirectory",
]
