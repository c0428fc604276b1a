from typing import Any, Dict, Optional

from dashcache.clients.core_client import CoreClient
from dashcache.config.resources import ResourceDescriptor, get_descriptor
from dashcache.core.exceptions.exceptions import InvalidStateError, ServerError
from dashcache.schemas.mutation import CreateSubmission
from dashcache.services.item_store import Item, ItemStore
from dashcache.services.query_cache import QueryCache
from dashcache.utils.log import app_logger


class MutationDispatcher:
    """Sends create/update/delete requests and reconciles local state.

    The item store only ever receives the server's representation of an item.
    List views are kept honest by invalidation (create, update) or by pruning
    (delete); a new item is never spliced into a cached list.
    Errors from the remote API propagate unchanged and leave local state as it
    was.
    """

    def __init__(self, item_store: ItemStore, query_cache: QueryCache, client: CoreClient):
        self.item_store = item_store
        self.query_cache = query_cache
        self.client = client

    @staticmethod
    def _identity(descriptor: ResourceDescriptor, record: Dict[str, Any]) -> str:
        try:
            return descriptor.identity(record)
        except (KeyError, TypeError) as e:
            raise ServerError(f"{descriptor.name} response without identity", detail=repr(e)) from e

    async def submit(self, submission: CreateSubmission) -> Item:
        """Send one logical create.

        Resubmitting the same `submission` after a failure resends its client
        token, so the server returns the resource it may already have created
        instead of creating a second one.
        """
        descriptor = get_descriptor(submission.resource_type)
        if not descriptor.can_create:
            raise InvalidStateError(f"{descriptor.name} resources cannot be created")
        unknown = set(submission.fields) - descriptor.fields
        if unknown:
            raise InvalidStateError(
                f"unknown {descriptor.name} field(s): {', '.join(sorted(unknown))}"
            )

        try:
            record = await self.client.create(descriptor, dict(submission.fields), submission.client_token)
        except Exception as e:
            app_logger.warning("mutation.create_failed", resource=descriptor.name,
                               exc_type=type(e).__name__, error=str(e))
            raise

        identity = self._identity(descriptor, record)
        self.item_store.put(identity, record)
        self.query_cache.invalidate_all(descriptor.name)
        app_logger.info("mutation.created", resource=descriptor.name, identity=identity)
        return self.item_store.get(identity)

    async def create(self, resource_type: str, fields: Dict[str, Any],
                     client_token: Optional[str] = None) -> Item:
        if client_token is None:
            submission = CreateSubmission(resource_type=resource_type, fields=fields)
        else:
            submission = CreateSubmission(resource_type=resource_type, fields=fields,
                                          client_token=client_token)
        return await self.submit(submission)

    async def update(self, resource_type: str, identity: str, patch: Dict[str, Any]) -> Item:
        descriptor = get_descriptor(resource_type)

        try:
            record = await self.client.update(descriptor, identity, patch)
            if record is None:
                # acknowledged without a body; read back what the server now holds
                record = await self.client.get_item(descriptor, identity)
        except Exception as e:
            app_logger.warning("mutation.update_failed", resource=descriptor.name,
                               identity=identity, exc_type=type(e).__name__, error=str(e))
            raise
        if record is None:
            raise ServerError(f"{descriptor.name} {identity} not found after update")

        self.item_store.put(identity, record)
        if self.query_cache.lists_identity(descriptor.name, identity):
            self.query_cache.invalidate_all(descriptor.name)
        app_logger.info("mutation.updated", resource=descriptor.name, identity=identity)
        return self.item_store.get(identity)

    async def delete(self, resource_type: str, identity: str) -> None:
        descriptor = get_descriptor(resource_type)
        if not descriptor.can_delete:
            raise InvalidStateError(f"{descriptor.name} resources cannot be deleted")
        body = descriptor.delete_body(identity, self.item_store.get(identity))

        try:
            await self.client.delete(descriptor, body)
        except Exception as e:
            app_logger.warning("mutation.delete_failed", resource=descriptor.name,
                               identity=identity, exc_type=type(e).__name__, error=str(e))
            raise

        self.item_store.remove(identity)
        pruned = self.query_cache.prune(identity)
        app_logger.info("mutation.deleted", resource=descriptor.name, identity=identity, pruned=pruned)
