"""arq worker settings module.

Import path for arq CLI: arq ranking.workers.settings.WorkerSettings
"""

from __future__ import annotations

from ranking.workers.jobs import WorkerSettings

__all__ = ["WorkerSettings"]
