from __future__ import annotations

import threading
from collections.abc import Hashable

from contact_calib.errors import PoolInitializationError
from contact_calib.log import get_logger
from contact_calib.model import ForwardModel


logger = get_logger(__name__)


class ModelPool:
    """
    One mutable clone of a prototype model per worker.

    acquire(worker_id) contract:
      - the first call for a worker clones the prototype and runs
        init_system() while holding the pool lock; the lookup, the clone and
        the insert happen under that one lock, so concurrent first calls
        can never create two entries for the same worker
      - later calls from the same worker return the same clone without locking
      - a clone belongs to its worker for the rest of the run; no other
        worker may use it

    The prototype is only read, and only while cloning under the lock.
    """

    def __init__(self, prototype: ForwardModel) -> None:
        self._prototype = prototype
        self._models: dict[Hashable, ForwardModel] = {}
        self._lock = threading.Lock()

    @property
    def prototype(self) -> ForwardModel:
        return self._prototype

    def acquire(self, worker_id: Hashable | None = None) -> ForwardModel:
        if worker_id is None:
            worker_id = threading.get_ident()

        model = self._models.get(worker_id)
        if model is not None:
            return model

        with self._lock:
            model = self._models.get(worker_id)
            if model is None:
                try:
                    model = self._prototype.clone()
                    model.init_system()
                except Exception as e:
                    raise PoolInitializationError(
                        f'Could not create a model for worker {worker_id}: {e}'
                    ) from e
                self._models[worker_id] = model
                logger.debug(f'created model clone for worker {worker_id} (pool size={len(self._models)})')
        return model

    def clone_prototype(self) -> ForwardModel:
        """Unpooled clone of the prototype (e.g. for a final comparison or export)."""
        with self._lock:
            return self._prototype.clone()

    def worker_ids(self) -> list[Hashable]:
        with self._lock:
            return list(self._models.keys())

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, worker_id: Hashable) -> bool:
        return worker_id in self._models
