"""Monitor lifecycle helpers shared by the app lifespan and the config routes."""

from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.config import MonitorConfig
from threadwatch.monitor import ForumMonitor

logger = get_logger(__name__)


def activate_config(state, config: MonitorConfig) -> ForumMonitor:
    """Apply ``config`` to the running monitor, creating it on first use.

    ``state`` is ``app.state``. A newly created monitor is started when
    MONITOR_AUTOSTART is enabled.

    Raises:
        ConfigError: The configuration cannot be applied
    """
    monitor = state.monitor
    if monitor is not None:
        monitor.reconfigure(config)
        return monitor

    monitor = ForumMonitor(state.store, config, config_manager=state.config_manager)
    state.monitor = monitor
    logger.info("monitor_created", notice_type=config.notice_type)
    if state.settings.monitor_autostart:
        monitor.start()
    return monitor


def monitor_state(state) -> str:
    monitor = state.monitor
    if monitor is None:
        return "unconfigured"
    return "running" if monitor.is_running else "stopped"
