"""Downstream reconfiguration tasks"""
import enum
import logging
from typing import Optional

from certsync.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class ReconfigurationKind(str, enum.Enum):
    """Kinds of reconfiguration the web-server worker understands"""
    REBUILD_VHOSTS = "rebuild_vhosts"


class TaskQueue:
    """Sends reconfiguration tasks to the worker owning the web-server configs"""

    def __init__(self, config: Settings = default_settings, app=None):
        self.settings = config
        self._app = app

    @property
    def app(self):
        if self._app is None:
            from certsync.tasks import celery_app
            self._app = celery_app
        return self._app

    def enqueue(self, kind: ReconfigurationKind = ReconfigurationKind.REBUILD_VHOSTS) -> Optional[str]:
        result = self.app.send_task(
            self.settings.RECONFIGURE_TASK_NAME,
            args=[kind.value],
            queue=self.settings.RECONFIGURE_QUEUE,
        )
        logger.info(f"Enqueued {kind.value} reconfiguration task {result.id}")
        return result.id
