import logging

logger = logging.getLogger(__name__)


class CellCache:
    """Resolved snapshot cells keyed by (col, display_row).

    `generation` advances on every wholesale clear so that asynchronous
    fetches started before the clear can be recognised and dropped.
    """

    def __init__(self):
        self._cells = {}
        self.generation = 0

    def get(self, key):
        cell = self._cells.get(key)
        return cell.copy() if cell is not None else None

    def put(self, key, cell, generation: int | None = None) -> bool:
        if generation is not None and generation != self.generation:
            return False
        self._cells[key] = cell.copy()
        return True

    def drop(self, key):
        self._cells.pop(key, None)

    def clear(self, reason: str = ""):
        self._cells.clear()
        self.generation += 1
        logger.debug("Cell cache cleared (%s), generation %d", reason or "manual", self.generation)

    def __contains__(self, key):
        return key in self._cells

    def __len__(self):
        return len(self._cells)
