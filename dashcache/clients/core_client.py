import asyncio
import base64
from http.cookiejar import DefaultCookiePolicy
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from dashcache.utils.log import app_logger
from dashcache.clients.base_http_client import BaseHTTPClient
from dashcache.config.resources import ResourceDescriptor
from dashcache.core.exceptions.exceptions import (
    InvalidStateError,
    ServerError,
    UnauthorizedError,
    ValidationFailedError,
)
from dashcache.schemas.mutation import APIErrorBody
from dashcache.schemas.query import ListQuery, Page


class CoreClient(BaseHTTPClient):
    """Async client for the core's resource API.

    Requests are blocking `requests` calls run in a worker thread, so awaiting
    one suspends only the calling coroutine. Results are handed back to the
    event loop; nothing here touches the item store or the query cache.

    The `requests.Session` is shared by those worker threads and is never
    changed after construction: the client token travels in per-request
    headers, built on the event loop when the request is issued, and the
    session keeps no cookies.
    """

    def __init__(
        self,
        base_url: str,
        client_token: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 0,
        retry_delay: float = 1.5,
        on_unauthorized: Optional[Callable[[UnauthorizedError], None]] = None,
    ):
        self.on_unauthorized = on_unauthorized
        self._authorization: Optional[str] = None
        super().__init__(
            base_url=base_url,
            api_key=client_token,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )
        self.session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))

    def _setup_authentication(self):
        encoded = base64.b64encode(self.api_key.encode()).decode()
        self._authorization = f"Basic {encoded}"

    def set_client_token(self, client_token: Optional[str]) -> None:
        # requests already in flight keep the headers they were issued with
        self.api_key = client_token
        self._authorization = None
        if client_token:
            self._setup_authentication()

    def auth_headers(self) -> Dict[str, str]:
        if self._authorization is None:
            return {}
        return {'Authorization': self._authorization}

    async def _call(self, path: str, body: Any) -> Any:
        headers = self.auth_headers()
        try:
            return await asyncio.to_thread(self.post, path, body, headers)
        except UnauthorizedError as e:
            app_logger.warning("core_client.unauthorized", path=path, request_id=e.request_id)
            if self.on_unauthorized is not None:
                self.on_unauthorized(e)
            raise

    @staticmethod
    def _unwrap_batch(descriptor: ResourceDescriptor, response: Any) -> Any:
        if not descriptor.batch:
            return response
        if not isinstance(response, list) or len(response) != 1:
            raise ServerError(f"expected a one-element batch response from {descriptor.name}")
        result = response[0]
        if APIErrorBody.is_error(result):
            err = APIErrorBody.model_validate(result)
            raise ValidationFailedError(
                err.message,
                code=err.code,
                detail=err.detail,
                temporary=err.temporary,
                data=err.data,
            )
        return result

    async def list_page(self, descriptor: ResourceDescriptor, query: ListQuery) -> Page:
        response = await self._call(descriptor.list_path, query.to_body())
        if not isinstance(response, dict) or not isinstance(response.get('items'), list):
            raise ServerError(f"malformed list response from {descriptor.list_path}")

        is_last_page = bool(response.get('last_page', False))
        cursor = None
        if not is_last_page:
            cursor = (response.get('next') or {}).get('after')
            if not cursor:
                raise ServerError(f"list response from {descriptor.list_path} has no cursor")

        try:
            page = Page(items=response['items'], cursor=cursor, is_last_page=is_last_page)
        except ValidationError as e:
            raise ServerError(f"malformed list response from {descriptor.list_path}", detail=str(e)) from e
        app_logger.debug("core_client.list_page", resource=descriptor.name,
                         count=len(page.items), last_page=page.is_last_page)
        return page

    async def get_item(self, descriptor: ResourceDescriptor, identity: str) -> Optional[Dict[str, Any]]:
        """Re-read one item from the server, or None if it no longer exists."""
        if descriptor.lookup_filter is None:
            raise InvalidStateError(f"{descriptor.name} items cannot be looked up by identity")
        query = ListQuery(filter=descriptor.lookup_filter, filter_params=[identity], page_size=1)
        page = await self.list_page(descriptor, query)
        return page.items[0] if page.items else None

    async def create(self, descriptor: ResourceDescriptor, fields: Dict[str, Any],
                     client_token: str) -> Dict[str, Any]:
        if not descriptor.can_create:
            raise InvalidStateError(f"{descriptor.name} resources cannot be created")
        body: Dict[str, Any] = {**fields, 'client_token': client_token}
        response = await self._call(descriptor.create_path, [body] if descriptor.batch else body)
        record = self._unwrap_batch(descriptor, response)
        if not isinstance(record, dict):
            raise ServerError(f"malformed create response from {descriptor.create_path}")
        return record

    async def update(self, descriptor: ResourceDescriptor, identity: str,
                     patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Send a partial update.

        Returns the server's representation, or None when the server only
        acknowledged the change.
        """
        if not descriptor.can_update:
            raise InvalidStateError(f"{descriptor.name} resources cannot be updated")
        body: Dict[str, Any] = {**patch, 'id': identity}
        response = await self._call(descriptor.update_path, [body] if descriptor.batch else body)
        record = self._unwrap_batch(descriptor, response)
        if not isinstance(record, dict):
            return None
        try:
            if descriptor.identity(record) != identity:
                return None
        except (KeyError, TypeError):
            return None
        return record

    async def delete(self, descriptor: ResourceDescriptor, body: Dict[str, Any]) -> None:
        if not descriptor.can_delete:
            raise InvalidStateError(f"{descriptor.name} resources cannot be deleted")
        await self._call(descriptor.delete_path, body)
