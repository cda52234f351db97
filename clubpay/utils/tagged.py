"""
Chargements asynchrones étiquetés par la valeur du sélecteur qui les a déclenchés.

Chaque chargement mémorise l'étiquette (mode/adhérent/activité) sous laquelle il a été émis.
À l'arrivée du résultat, l'étiquette est comparée à la valeur courante du sélecteur:
si elle a changé (ou si l'écran a été fermé), le résultat est ignoré sans toucher l'état.
"""
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Set
import asyncio
import logging

logger = logging.getLogger(__name__)


class TaggedLoads:
    def __init__(self):
        self.closed = False
        self._tasks: Set[asyncio.Task] = set()
        self._pending: Dict[str, int] = {}

    def pending(self, slot: Optional[str] = None) -> bool:
        if slot is None:
            return any(self._pending.values())
        return self._pending.get(slot, 0) > 0

    async def run(
        self,
        slot: str,
        tag: Hashable,
        loader: Callable[[], Awaitable[Any]],
        apply: Callable[[Any], None],
        selector: Callable[[], Hashable],
    ) -> bool:
        """Exécute le chargement puis applique le résultat s'il est encore d'actualité. Retourne True si appliqué."""
        self._pending[slot] = self._pending.get(slot, 0) + 1
        try:
            result = await loader()
        finally:
            self._pending[slot] -= 1
        if self.closed:
            logger.debug("tagged.%s discarded after teardown tag=%s", slot, tag)
            return False
        current = selector()
        if current != tag:
            logger.debug("tagged.%s stale tag=%s current=%s", slot, tag, current)
            return False
        apply(result)
        return True

    def spawn(
        self,
        slot: str,
        tag: Hashable,
        loader: Callable[[], Awaitable[Any]],
        apply: Callable[[Any], None],
        selector: Callable[[], Hashable],
    ) -> Optional[asyncio.Task]:
        if self.closed:
            return None
        task = asyncio.create_task(self.run(slot, tag, loader, apply, selector))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Attend la fin de tous les chargements en cours (y compris ceux lancés entre-temps)."""
        while True:
            running = [t for t in self._tasks if not t.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    async def close(self) -> None:
        self.closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
