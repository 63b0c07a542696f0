"""Session handshake: engine -> SY_Session -> user -> company -> module/date.

Each stage fails with its own error type so operators can tell a bad server
path from bad credentials from a bad company code.
"""

from datetime import datetime
from typing import Callable, Optional

from connectors.record_session import (
    ExternalCallError,
    ExternalOperationFailure,
    RecordDriver,
    RecordObject,
    ScriptEngine,
    UnsupportedCapability,
)
from connectors.sage100 import fields
from core.config import SageConfig
from core.observability.logging import get_logger
from core.pool.errors import (
    AuthenticationError,
    CompanySelectionError,
    EngineInitError,
)
from core.pool.handle import SessionHandle

logger = get_logger(__name__)


class SessionFactory:
    """Builds authenticated ``SessionHandle`` objects for the pool.

    Usage:
        factory = SessionFactory(create_driver("com"), SageConfig.from_env())
        pool = SessionPool(factory.create, size=config.pool_size)
    """

    def __init__(
        self,
        driver: RecordDriver,
        config: SageConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.driver = driver
        self.config = config
        self._clock = clock or datetime.now

    def create(self) -> SessionHandle:
        """Run the full handshake.

        Raises:
            EngineInitError: Engine or SY_Session could not be created, or the
                session faulted while setting the module context
            AuthenticationError: nSetUser rejected the credentials
            CompanySelectionError: nSetCompany rejected the company code
        """
        engine = self._open_engine()
        session: Optional[RecordObject] = None
        try:
            session = self._new_session(engine)
            self._set_user(session)
            self._set_company(session)
            self._set_module_context(session)
        except Exception:
            if session is not None:
                session.close()
            engine.close()
            raise

        handle = SessionHandle(engine, session)
        logger.info(
            f"Session {handle.session_id} ready (company={self.config.company}, module={self.config.module})"
        )
        return handle

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _open_engine(self) -> ScriptEngine:
        try:
            return self.driver.open(self.config.server_path)
        except ExternalCallError as e:
            raise EngineInitError(f"Failed to initialize ProvideX engine: {e}", external_message=str(e)) from e

    def _new_session(self, engine: ScriptEngine) -> RecordObject:
        try:
            return engine.new_object(fields.SESSION)
        except (ExternalCallError, ExternalOperationFailure) as e:
            raise EngineInitError(f"Failed to create {fields.SESSION}: {e}", external_message=str(e)) from e

    def _set_user(self, session: RecordObject) -> None:
        try:
            result = session.call(fields.SET_USER, self.config.username, self.config.password)
        except ExternalCallError as e:
            raise AuthenticationError(f"{fields.SET_USER} raised: {e}", external_message=str(e)) from e
        if not result.ok:
            raise AuthenticationError(
                f"Failed to set user '{self.config.username}': {result.message}",
                external_message=result.message,
            )
        logger.debug(f"{fields.SET_USER} succeeded for {self.config.username}")

    def _set_company(self, session: RecordObject) -> None:
        try:
            result = session.call(fields.SET_COMPANY, self.config.company)
        except ExternalCallError as e:
            raise CompanySelectionError(f"{fields.SET_COMPANY} raised: {e}", external_message=str(e)) from e
        if not result.ok:
            raise CompanySelectionError(
                f"Failed to set company '{self.config.company}': {result.message}",
                external_message=result.message,
            )
        logger.debug(f"{fields.SET_COMPANY} succeeded for {self.config.company}")

    def _set_module_context(self, session: RecordObject) -> None:
        """Module and date are best-effort: a rejection is logged only.

        A raw driver fault here means the session object is already broken,
        so it fails the handshake like any other engine fault.
        """
        module = self.config.module
        if not module:
            return
        today = self._clock().strftime("%Y%m%d")
        for method, args in ((fields.SET_MODULE, (module,)), (fields.SET_DATE, (module, today))):
            try:
                result = session.call(method, *args)
            except UnsupportedCapability as e:
                logger.warning(f"Could not set module context {module}: {e}")
                return
            except ExternalCallError as e:
                raise EngineInitError(f"{method} raised: {e}", external_message=str(e)) from e
            if not result.ok:
                logger.warning(f"{method}{args} rejected: {result.message}")
