import asyncio
from typing import List
from fastapi import APIRouter, Depends, Query
from server.dependencies import get_task_repository
from server.repository import TaskRepository
from server.schemas import Task

router = APIRouter()

# =========================================================
# TASK ENDPOINTS
# =========================================================
@router.get("/", response_model=List[Task])
async def get_user_tasks(
    user_id: str = Query(..., min_length=1),
    repository: TaskRepository = Depends(get_task_repository),
):
    return await asyncio.to_thread(repository.find_tasks_by_user, user_id)
