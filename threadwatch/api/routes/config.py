"""Engine configuration endpoints.

- GET /api/config: Current engine configuration
- POST /api/config: Validate, persist and apply a new configuration
- POST /api/reload: Re-read the config file and apply it

A rejected configuration never replaces the active one.
"""

from fastapi import APIRouter, Depends, Request

from threadwatch.api.models import ConfigUpdateRequest
from threadwatch.api.responses import CONFIG_ERROR, raise_api_error, wrap_response
from threadwatch.api.runtime import activate_config, monitor_state
from threadwatch.api.security import require_access_token
from threadwatch.backend.utils.errors import ConfigError
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.config import ConfigManager

router = APIRouter(prefix="/api", tags=["config"], dependencies=[Depends(require_access_token)])
logger = get_logger(__name__)


@router.get("/config")
def get_config(request: Request):
    """Return the configuration currently held by the config manager."""
    try:
        config = request.app.state.config_manager.get()
    except ConfigError as e:
        raise_api_error(CONFIG_ERROR, str(e))

    return wrap_response({"config": config.model_dump()})


@router.post("/config")
def update_config(request: Request, body: ConfigUpdateRequest):
    """Validate, save and apply a configuration.

    Request body: ``{"config": {...}}`` with the same keys as the config file.

    Returns:
        Response envelope with the applied configuration and monitor state.
        422 CONFIG_ERROR if the configuration is invalid.
    """
    state = request.app.state

    try:
        config = ConfigManager.validate(body.config)
    except ConfigError as e:
        logger.warning("config_update_rejected", error=str(e))
        raise_api_error(CONFIG_ERROR, str(e))

    try:
        state.config_manager.save(config)
        activate_config(state, config)
    except ConfigError as e:
        logger.error("config_update_failed", error=str(e))
        raise_api_error(CONFIG_ERROR, str(e))

    logger.info("config_updated", notice_type=config.notice_type, urls=len(config.urls),
                extra_urls=len(config.extra_urls))
    return wrap_response({"config": config.model_dump(), "monitor": monitor_state(state)})


@router.post("/reload")
def reload_config(request: Request):
    """Re-read the config file from disk and apply it."""
    state = request.app.state

    try:
        if state.monitor is not None:
            config = state.monitor.reload()
        else:
            config = state.config_manager.reload()
            activate_config(state, config)
    except ConfigError as e:
        logger.warning("config_reload_rejected", error=str(e))
        raise_api_error(CONFIG_ERROR, str(e))

    logger.info("config_reloaded_via_api")
    return wrap_response({"config": config.model_dump(), "monitor": monitor_state(state)})
