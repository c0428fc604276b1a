from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from dashcache.core.exceptions.exceptions import InfrastructureError, UnauthorizedError
from dashcache.models.session_snapshot import SessionSnapshot
from dashcache.services.database import get_db, session_factory
from dashcache.utils.log import app_logger


class SessionState(BaseModel):
    client_token: Optional[str] = None
    valid_token: bool = False
    require_client_token: bool = False


class SessionManager:
    """Authentication state of the current session.

    Reacts to `UnauthorizedError` (drop the token, ask for a new one) so the
    caches never have to. Only this small snapshot is persisted; cached items
    and query results are always rebuilt from the remote API.
    """

    def __init__(self, engine: Engine, namespace: str, client=None):
        self.namespace = namespace
        self.client = client
        self._factory = session_factory(engine)
        self.state = SessionState()

    def _apply(self, **changes) -> None:
        self.state = self.state.model_copy(update=changes)
        if self.client is not None:
            self.client.set_client_token(self.state.client_token)

    def set_client_token(self, token: str) -> None:
        # a new token is unproven until a request with it succeeds
        self._apply(client_token=token, valid_token=False)

    def log_in(self) -> None:
        self._apply(valid_token=True, require_client_token=False)
        app_logger.info("session.log_in", namespace=self.namespace)

    def log_out(self) -> None:
        self._apply(client_token=None, valid_token=False)
        app_logger.info("session.log_out", namespace=self.namespace)

    def handle_unauthorized(self, error: Optional[UnauthorizedError] = None) -> None:
        self._apply(client_token=None, valid_token=False, require_client_token=True)
        app_logger.warning("session.unauthorized", namespace=self.namespace,
                           request_id=getattr(error, 'request_id', None))

    def persist(self) -> None:
        try:
            with get_db(self._factory) as db:
                row = db.get(SessionSnapshot, self.namespace) or SessionSnapshot(namespace=self.namespace)
                row.client_token = self.state.client_token
                row.valid_token = self.state.valid_token
                row.require_client_token = self.state.require_client_token
                row.updated_at = datetime.now()
                db.add(row)
                db.commit()
        except SQLAlchemyError as e:
            app_logger.error("session.persist_failed", namespace=self.namespace, error=str(e))
            raise InfrastructureError(f"could not persist session '{self.namespace}'") from e
        app_logger.debug("session.persisted", namespace=self.namespace)

    def restore(self) -> bool:
        """Load the persisted snapshot; returns False when there is none."""
        try:
            with get_db(self._factory) as db:
                row = db.get(SessionSnapshot, self.namespace)
        except SQLAlchemyError as e:
            app_logger.error("session.restore_failed", namespace=self.namespace, error=str(e))
            raise InfrastructureError(f"could not restore session '{self.namespace}'") from e
        if row is None:
            return False
        self._apply(
            client_token=row.client_token,
            valid_token=row.valid_token,
            require_client_token=row.require_client_token,
        )
        app_logger.info("session.restored", namespace=self.namespace, valid_token=row.valid_token)
        return True

    def clear(self) -> None:
        try:
            with get_db(self._factory) as db:
                row = db.get(SessionSnapshot, self.namespace)
                if row is not None:
                    db.delete(row)
                    db.commit()
        except SQLAlchemyError as e:
            app_logger.error("session.clear_failed", namespace=self.namespace, error=str(e))
            raise InfrastructureError(f"could not clear session '{self.namespace}'") from e
        self._apply(client_token=None, valid_token=False, require_client_token=False)
