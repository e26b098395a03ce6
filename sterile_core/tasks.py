# sterile_core/tasks.py
from __future__ import annotations

import logging

from celery import shared_task

from sterile_core.workflows.executor import cooling_ready

logger = logging.getLogger(__name__)


@shared_task
def scan_cooling_ready() -> int:
    """
    Count items whose cooling dwell has elapsed and can be finished.
    """
    ready = cooling_ready()
    if ready:
        logger.info("%d item(s) ready to leave cooling: %s", len(ready), ", ".join(ready[:20]))
    return len(ready)
