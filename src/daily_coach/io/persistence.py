"""
Fire-and-forget plan persistence.

The local write happens inline (it is cheap and must be visible to the next
`history` command); the remote push runs on a background executor so a
slow or failing sync service never delays the returned plan.  Failures are
logged and never retract a plan.
"""

from concurrent.futures import Future, ThreadPoolExecutor

from loguru import logger

from ..core.models import Plan
from .interfaces import RemotePersistence, Storage, plan_key
from .serializers import plan_to_dict


class PlanPersister:
    """Writes finished plans to storage and pushes them to the remote service."""

    def __init__(
        self,
        storage: Storage | None = None,
        remote: RemotePersistence | None = None,
    ):
        self.storage = storage
        self.remote = remote
        self._executor: ThreadPoolExecutor | None = None

    def persist(self, plan: Plan, user_id: str, date: str) -> Future | None:
        """
        Save *plan* under ``plan:<user_id>:<date>`` and queue the remote push.

        Returns:
            The Future of the remote push, or None when there is no remote.
        """
        key = plan_key(user_id, date)
        if self.storage is not None:
            try:
                self.storage.set(key, plan_to_dict(plan))
                logger.debug(f"plan stored under {key}")
            except Exception as exc:
                logger.warning(f"local plan save failed for {key}: {exc!r}")

        if self.remote is None:
            return None
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="persist")
        return self._executor.submit(self._push, plan, key)

    def _push(self, plan: Plan, key: str) -> bool:
        try:
            result = self.remote.persist_plan(plan)
        except Exception as exc:
            logger.warning(f"remote plan persistence failed for {key}: {exc!r}")
            return False
        if result is False or isinstance(result, Exception) or (
            isinstance(result, dict) and result.get("error")
        ):
            logger.warning(f"remote plan persistence rejected {key}: {result!r}")
            return False
        logger.debug(f"plan {key} pushed to remote")
        return True

    def close(self, wait: bool = True) -> None:
        """Stop the background executor; pending pushes finish when *wait*."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
