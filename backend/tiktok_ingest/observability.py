"""Logging and error-tracking setup."""
import logging
import sys
from typing import Any

import sentry_sdk
import structlog

from tiktok_ingest.config import Settings
from tiktok_ingest.schemas.ingest import PostData
from tiktok_ingest.utils.helpers import truncate
from tiktok_ingest.utils.sanitize import safe_serialize, sanitize_string

logger = structlog.get_logger()


def setup_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure stdlib logging and structlog to share one output stream."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def init_sentry(settings: Settings, integrations: list[Any] | None = None) -> bool:
    """Initialize Sentry when a DSN is configured. Returns whether it was enabled."""
    if not settings.SENTRY_DSN:
        return False
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=integrations or [],
        traces_sample_rate=0.1 if settings.APP_ENV == "production" else 1.0,
        environment=settings.APP_ENV,
    )
    logger.info("sentry_enabled", env=settings.APP_ENV)
    return True


def post_failure_context(post: PostData) -> dict[str, dict[str, Any]]:
    """Raw and sanitized views of the free-text fields of a failing post."""
    return {
        "post_data": {
            "tiktok_id": post.tiktok_id,
            "content_type": post.content_type.value,
            "author_handle": post.author_handle,
            "title": truncate(post.title or "", 100),
            "description": truncate(post.description or "", 100),
            "hashtag_count": len(post.hashtags),
            "mention_count": len(post.mentions),
        },
        "sanitized_fields": {
            "title": sanitize_string(post.title),
            "description": sanitize_string(post.description),
            "author_nickname": sanitize_string(post.author_nickname),
            "hashtags": safe_serialize([tag.model_dump() for tag in post.hashtags]),
            "mentions": safe_serialize(post.mentions),
        },
    }


def capture_post_upsert_failure(exc: BaseException, post: PostData, is_new: bool) -> None:
    """Report a failed post write to Sentry with the post attached."""
    context = post_failure_context(post)
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("error_type", type(exc).__name__)
        scope.set_tag("tiktok_id", post.tiktok_id)
        scope.set_tag("content_type", post.content_type.value)
        scope.set_tag("operation", "create" if is_new else "update")
        for name, value in context.items():
            scope.set_context(name, value)
        sentry_sdk.capture_exception(exc)
