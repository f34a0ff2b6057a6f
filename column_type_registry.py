import logging

from column_types import default_column_types

logger = logging.getLogger(__name__)


class ColumnTypeRegistry:
    """Maps a column data type to the handler that builds its cells."""

    def __init__(self, handlers=None):
        self._handlers = {}
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler):
        if handler.data_type in self._handlers:
            logger.warning(
                "Column type %s is already registered. Overwriting...",
                getattr(handler.data_type, "value", handler.data_type),
            )
        self._handlers[handler.data_type] = handler

    def get(self, data_type):
        return self._handlers.get(data_type)

    def has_type(self, data_type) -> bool:
        return data_type in self._handlers

    def get_all(self) -> dict:
        return dict(self._handlers)

    def clear(self):
        self._handlers.clear()


def create_default_registry() -> ColumnTypeRegistry:
    return ColumnTypeRegistry(default_column_types())
