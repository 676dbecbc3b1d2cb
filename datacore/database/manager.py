from datacore.logging.logger import LogConfig
from .sqlmodel_driver import AsyncSQLModelDriver, SQLModelDriver

class DatabaseManager:
    _instance = None

    def __init__(self, settings):
        self.driver = SQLModelDriver(settings.DATABASE_URL, echo=settings.DB_ECHO)
        self.async_driver = AsyncSQLModelDriver(settings.ASYNC_DATABASE_URL, echo=settings.DB_ECHO)

    @classmethod
    def get_instance(cls, settings=None):
        if cls._instance is None:
            if settings is None:
                from datacore.config import settings as app_settings
                settings = app_settings
            LogConfig.setup_logging()
            cls._instance = cls(settings)
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Dispose the singleton's sync engine and forget it (tests, reconfiguration)."""
        if cls._instance is not None:
            cls._instance.driver.disconnect()
            cls._instance = None

    @classmethod
    async def reset_instance_async(cls):
        """Dispose both engines and forget the singleton."""
        if cls._instance is not None:
            cls._instance.driver.disconnect()
            await cls._instance.async_driver.disconnect()
            cls._instance = None

    def open_session(self):
        return self.driver.open_session()

    def open_async_session(self):
        return self.async_driver.open_session()

    def unit_of_work(self, uow_class=None):
        """Open a new session wrapped in a fresh unit of work (one per logical operation)."""
        return self._uow_class(uow_class)(self.open_session())

    def async_unit_of_work(self, uow_class=None):
        """Same as unit_of_work(), over an asynchronous session."""
        return self._uow_class(uow_class)(self.open_async_session())

    @staticmethod
    def _uow_class(uow_class):
        if uow_class is None:
            from datacore.repository.unit_of_work import UnitOfWork
            uow_class = UnitOfWork
        return uow_class
