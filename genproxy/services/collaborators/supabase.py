"""
Supabase-backed collaborators over plain REST (GoTrue, PostgREST RPC, Storage).
TLS is always verified here; the relaxed trust setting belongs to the upstream client only.
"""
import logging
from urllib.parse import quote

import httpx

from genproxy.services.collaborators.base import (
    AuthenticatedUser,
    BlobStore,
    CreditLedger,
    IdentityProvider,
)
from genproxy.services.generation.errors import CollaboratorError, excerpt

logger = logging.getLogger(__name__)


class SupabaseClient:
    """
    Shared async client for the Supabase project.
    Lazily creates its httpx client; not configured when url or service key is empty.
    """

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = (url or "").rstrip("/")
        self.service_key = service_key or ""
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def is_configured(self) -> bool:
        return bool(self.url and self.service_key)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    def _headers(self, bearer: str | None = None) -> dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {bearer or self.service_key}",
        }

    async def request(
        self,
        method: str,
        path: str,
        *,
        bearer: str | None = None,
        json: dict | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        request_headers = self._headers(bearer)
        request_headers.update(headers or {})
        try:
            return await self.client.request(
                method, f"{self.url}{path}", headers=request_headers, json=json, content=content
            )
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Supabase {method} {path} failed: {type(e).__name__}: {e}") from e

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SupabaseIdentity(IdentityProvider):
    def __init__(self, client: SupabaseClient) -> None:
        self.client = client

    def is_available(self) -> bool:
        return self.client.is_configured()

    async def get_user(self, token: str) -> AuthenticatedUser | None:
        resp = await self.client.request("GET", "/auth/v1/user", bearer=token)
        if resp.status_code >= 500:
            raise CollaboratorError(f"Identity service error [{resp.status_code}]", http_status=resp.status_code)
        if not resp.is_success:
            return None
        try:
            data = resp.json()
        except ValueError:
            return None
        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            return None
        return AuthenticatedUser(id=str(user_id), email=data.get("email"))


class SupabaseLedger(CreditLedger):
    """Credits via the decrement_credits / increment_credits RPC functions."""

    def __init__(self, client: SupabaseClient) -> None:
        self.client = client

    def is_available(self) -> bool:
        return self.client.is_configured()

    async def decrement(self, user_id: str, amount: int) -> bool:
        resp = await self.client.request(
            "POST", "/rest/v1/rpc/decrement_credits", json={"count": amount, "x_user_id": user_id}
        )
        if resp.is_success:
            return True
        if resp.status_code >= 500:
            raise CollaboratorError(
                f"Ledger decrement failed [{resp.status_code}]: {excerpt(resp.text)}",
                http_status=resp.status_code,
            )
        # The RPC raises when the balance would go negative
        logger.info(
            "ledger_decrement_rejected",
            extra={"user_id": user_id, "amount": amount, "status_code": resp.status_code, "error": excerpt(resp.text)},
        )
        return False

    async def increment(self, user_id: str, amount: int) -> None:
        resp = await self.client.request(
            "POST", "/rest/v1/rpc/increment_credits", json={"count": amount, "x_user_id": user_id}
        )
        if not resp.is_success:
            raise CollaboratorError(
                f"Ledger increment failed [{resp.status_code}]: {excerpt(resp.text)}",
                http_status=resp.status_code,
            )


class SupabaseBlobStore(BlobStore):
    def __init__(self, client: SupabaseClient, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def is_available(self) -> bool:
        return self.client.is_configured() and bool(self.bucket)

    def _object_path(self, path: str) -> str:
        return f"{quote(self.bucket)}/{quote(path.lstrip('/'))}"

    async def upload(self, path: str, content: bytes, content_type: str) -> None:
        resp = await self.client.request(
            "POST",
            f"/storage/v1/object/{self._object_path(path)}",
            content=content,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )
        if not resp.is_success:
            raise CollaboratorError(
                f"Storage upload failed [{resp.status_code}]: {excerpt(resp.text)}",
                http_status=resp.status_code,
            )

    def public_url(self, path: str) -> str:
        return f"{self.client.url}/storage/v1/object/public/{self._object_path(path)}"
