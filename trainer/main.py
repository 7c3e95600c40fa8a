from fastapi import FastAPI
from loguru import logger

from trainer.api.plans import router as plans_router
from trainer.config.settings import settings
from trainer.coordination.advisories import LoggingAdvisoryNotifier
from trainer.coordination.coordinator import ExpertCoordinator
from trainer.core.logger import setup_logger


def create_app(coordinator: ExpertCoordinator | None = None) -> FastAPI:
    """Build the API application.

    Args:
        coordinator: Coordinator with the deployment's experts registered.
            Without one, a coordinator with no experts is used and every
            request gets the conservative plan.
    """
    setup_logger(level=settings.log_level, log_file=settings.log_file, json_logs=settings.log_json)

    if coordinator is None:
        logger.warning("No experts registered; plans will use the conservative fallback")
        coordinator = ExpertCoordinator({}, notifier=LoggingAdvisoryNotifier(), settings=settings)

    app = FastAPI(title="Trainer Coordination Engine")
    app.state.coordinator = coordinator
    app.include_router(plans_router)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    logger.info("Application initialized", experts=",".join(coordinator.expert_names))
    return app


app = create_app()
