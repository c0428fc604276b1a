from typing import Any, List, Optional

from sqlalchemy.engine import Engine

from dashcache.clients.core_client import CoreClient
from dashcache.config.settings import Settings, settings as default_settings
from dashcache.schemas.query import QuerySignature
from dashcache.services.autocomplete_index import AutocompleteIndex
from dashcache.services.database import create_session_engine
from dashcache.services.item_store import Item, ItemStore
from dashcache.services.mutation_dispatcher import MutationDispatcher
from dashcache.services.pagination_controller import PaginationController
from dashcache.services.query_cache import QueryCache
from dashcache.services.session_manager import SessionManager
from dashcache.utils.log import app_logger


class DataLayer:
    """Explicitly constructed context holding the shared stores and the components using them.

    The item store and the query cache are owned here; the pagination
    controller, the mutation dispatcher and the autocomplete index only hold
    references to them. All methods are meant to run on one event loop.
    """

    def __init__(
        self,
        client: CoreClient,
        session: Optional[SessionManager] = None,
        default_page_size: int = 25,
        autocomplete_page_size: int = 100,
        autocomplete_sample_size: int = 1000,
    ):
        self.client = client
        self.session = session
        self.default_page_size = default_page_size

        self.item_store = ItemStore()
        self.query_cache = QueryCache()
        self.pagination = PaginationController(self.item_store, self.query_cache, client)
        self.mutations = MutationDispatcher(self.item_store, self.query_cache, client)
        self.autocomplete = AutocompleteIndex(
            self.pagination,
            page_size=autocomplete_page_size,
            sample_size=autocomplete_sample_size,
        )

        if session is not None:
            session.client = client
            client.on_unauthorized = session.handle_unauthorized

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None,
                      engine: Optional[Engine] = None) -> "DataLayer":
        config = config or default_settings
        app_logger.setLevel(config.LOG_LEVEL)

        client = CoreClient(
            base_url=str(config.CORE_URL),
            client_token=config.CORE_CLIENT_TOKEN,
            timeout=config.REQUEST_TIMEOUT,
            max_retries=config.REQUEST_MAX_RETRIES,
            retry_delay=config.REQUEST_RETRY_DELAY,
        )
        session = SessionManager(
            engine or create_session_engine(config.SESSION_DB_URL),
            namespace=config.SESSION_NAMESPACE,
        )
        layer = cls(
            client,
            session=session,
            default_page_size=config.DEFAULT_PAGE_SIZE,
            autocomplete_page_size=config.AUTOCOMPLETE_PAGE_SIZE,
            autocomplete_sample_size=config.AUTOCOMPLETE_SAMPLE_SIZE,
        )
        # a persisted token takes precedence over the configured one
        session.restore()
        if session.state.client_token is None and config.CORE_CLIENT_TOKEN:
            session.set_client_token(config.CORE_CLIENT_TOKEN)
        app_logger.info("data_layer.ready", core_url=str(config.CORE_URL))
        return layer

    def signature(self, resource_type: str, filter: str = "", filter_params: Any = (),
                  sort_order: Optional[str] = None, page_size: Optional[int] = None,
                  sum_by: Any = ()) -> QuerySignature:
        return QuerySignature(
            resource_type=resource_type,
            filter=filter,
            filter_params=filter_params,
            sort_order=sort_order,
            page_size=page_size or self.default_page_size,
            sum_by=sum_by,
        )

    def items(self, signature: QuerySignature) -> List[Item]:
        return self.pagination.items(signature)

    def reset(self) -> None:
        """Forget every cached item and query, e.g. after switching cores."""
        self.item_store.clear()
        self.query_cache.clear()

    def close(self) -> None:
        if self.session is not None:
            self.session.persist()
        self.client.close()
