"""vizbridge configuration."""

from __future__ import annotations

import logging
import sys

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class BridgeSettings(BaseSettings):
    """Environment-driven settings for the bridge layer."""

    # Configure dialog
    base_url: str = "http://localhost:8080/"
    configure_query: str = "?mode=configure"
    dialog_width: int = 600
    dialog_height: int = 400

    # RPC callback delivery
    callback_timeout_s: float = 30.0

    # Substituted for "Inf" / "-Inf" range bounds in selection criteria
    range_bound: float = sys.float_info.max

    # Outbound message channel
    message_buffer: int = 100
    subscriber_queue_size: int = 500

    # Transport
    host: str = "0.0.0.0"
    port: int = 8070
    log_level: str = "INFO"

    model_config = {"env_prefix": "VIZBRIDGE_", "env_file": ".env", "extra": "ignore"}


settings = BridgeSettings()
logger.debug("vizbridge config: base_url=%s, port=%d", settings.base_url, settings.port)
