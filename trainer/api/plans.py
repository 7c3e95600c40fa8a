"""Plan endpoints.

The coordinator is attached to the application at startup (see trainer.main)
and shared by all requests.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from loguru import logger

from trainer.coordination.coordinator import ExpertCoordinator

router = APIRouter(prefix="/plans", tags=["plans"])


def get_coordinator(request: Request) -> ExpertCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Plan coordinator is not configured",
        )
    return coordinator


@router.post("/today")
async def plan_today(
    context: dict[str, Any] = Body(...),
    coordinator: ExpertCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Today's plan for the given context (served from cache when possible)."""
    plan = await coordinator.plan_today(context)
    logger.info(
        "Plan served",
        endpoint="today",
        exercise_count=plan.exercise_count,
        is_fallback=plan.is_fallback,
    )
    return plan.to_public_dict()


@router.post("/session")
async def session_plan(
    context: dict[str, Any] = Body(...),
    coordinator: ExpertCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    plan = await coordinator.get_session_plan(context)
    logger.info(
        "Plan served",
        endpoint="session",
        exercise_count=plan.exercise_count,
        is_fallback=plan.is_fallback,
    )
    return plan.to_public_dict()


@router.get("/stats")
def plan_stats(coordinator: ExpertCoordinator = Depends(get_coordinator)) -> dict[str, Any]:
    return coordinator.get_performance_stats()


@router.delete("/cache", status_code=status.HTTP_204_NO_CONTENT)
def clear_plan_cache(coordinator: ExpertCoordinator = Depends(get_coordinator)) -> None:
    coordinator.clear_cache()
