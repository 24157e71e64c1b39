"""Monitor status and backend test endpoints.

- GET /api/status: Last cycle report and monitor state (no auth)
- POST /api/test-ai: One-off classifier call with supplied credentials
- POST /api/test-telegram: Send a test message with a supplied bot
"""

from fastapi import APIRouter, Depends, Request

from threadwatch.api.models import TestAIRequest, TestTelegramRequest
from threadwatch.api.responses import (
    CLASSIFIER_ERROR,
    NOTIFICATION_ERROR,
    raise_api_error,
    wrap_response,
)
from threadwatch.api.runtime import monitor_state
from threadwatch.api.security import require_access_token
from threadwatch.backend.utils.errors import ClassifierError, NotificationError
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.filters.cloudflare import CloudflareClassifier
from threadwatch.filters.openai_compat import OpenAIClassifier
from threadwatch.notifier.telegram import TelegramNotifier

router = APIRouter(prefix="/api", tags=["system"])
logger = get_logger(__name__)


@router.get("/status")
async def get_status(request: Request):
    """Return the monitor state and the most recent CycleReport (null before the first cycle)."""
    state = request.app.state
    monitor = state.monitor
    report = monitor.last_report if monitor is not None else None

    return wrap_response({
        "monitor": monitor_state(state),
        "last_cycle": report.to_dict() if report is not None else None,
    })


@router.post("/test-ai", dependencies=[Depends(require_access_token)])
def test_ai(body: TestAIRequest):
    """Run the supplied prompt and content through a classifier backend.

    Returns:
        Response envelope with the cleaned ``result`` and whether it counts
        as a valid (non-FALSE) answer. 502 CLASSIFIER_ERROR on failure.
    """
    try:
        if body.provider == "cloudflare":
            classifier = CloudflareClassifier(body.cf_account_id, body.cf_token, body.model)
        else:
            classifier = OpenAIClassifier(body.api_url, body.api_key, body.model)
        result = classifier.filter(body.content, body.prompt)
    except ClassifierError as e:
        logger.warning("test_ai_failed", provider=body.provider, model=body.model, error=str(e))
        raise_api_error(CLASSIFIER_ERROR, str(e))

    logger.info("test_ai_succeeded", provider=body.provider, model=body.model)
    return wrap_response({"result": result, "valid": classifier.is_valid_result(result)})


@router.post("/test-telegram", dependencies=[Depends(require_access_token)])
def test_telegram(body: TestTelegramRequest):
    """Send ``message`` through the supplied bot token and chat id."""
    notifier = TelegramNotifier(body.bot_token, body.chat_id)

    try:
        notifier.send(body.message)
    except NotificationError as e:
        raise_api_error(NOTIFICATION_ERROR, str(e))

    return wrap_response({"sent": True, "chat_id": body.chat_id})
