from fastapi import APIRouter
from . import tasks, prometheus, webhook

router = APIRouter()

router.include_router(webhook.router, prefix="/line", tags=["LINE"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(prometheus.router, prefix="/metrics", tags=["Metrics"])
