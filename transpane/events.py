import logging
from typing import Callable, List

logger = logging.getLogger(__name__)


class Signal:
    """Minimal callback list used by the core to publish events.

    Mirrors the connect/emit shape of a Qt signal without depending on Qt, so a
    presentation adapter can forward events to whatever mechanism it uses.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._slots: List[Callable] = []

    def connect(self, slot: Callable):
        if slot not in self._slots:
            self._slots.append(slot)

    def disconnect(self, slot: Callable = None):
        if slot is None:
            self._slots.clear()
        elif slot in self._slots:
            self._slots.remove(slot)

    def emit(self, *args):
        for slot in list(self._slots):
            try:
                slot(*args)
            except Exception as e:
                # A misbehaving subscriber must not break the pipeline loop
                logger.error(f"Subscriber of '{self.name}' raised: {e}")

    def __len__(self):
        return len(self._slots)
