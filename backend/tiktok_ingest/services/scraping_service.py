"""TikTok profile scraping through ScrapeCreators.

Turns the raw profile-videos payload into ``PostData``/``ProfileData``
records, with parsed pages kept in the lookaside cache.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from tiktok_ingest.errors import PayloadValidationError, UpstreamAPIError
from tiktok_ingest.integrations.scrapecreators.client import ScrapeCreatorsClient
from tiktok_ingest.models.tiktok_post import PostContentType
from tiktok_ingest.schemas.ingest import HashtagData, ImageData, PostData, ProfileData, ProfileVideosPage
from tiktok_ingest.schemas.scrapecreators import AwemeItem, ProfileVideosResponse, UrlList
from tiktok_ingest.services.query_cache import CacheKeys, CacheTTL, QueryCache

logger = logging.getLogger(__name__)

_HASHTAG = re.compile(r"#\w+")
_MENTION = re.compile(r"@[\w.]+")
_WHITESPACE = re.compile(r"\s+")

TITLE_MAX_LENGTH = 60
DEFAULT_TITLE = "TikTok Post"


def extract_hashtags(description: str) -> list[HashtagData]:
    return [
        HashtagData(text=tag, url=f"https://www.tiktok.com/tag/{tag[1:]}")
        for tag in _HASHTAG.findall(description or "")
    ]


def extract_mentions(description: str) -> list[str]:
    return [mention[1:] for mention in _MENTION.findall(description or "")]


def generate_title(description: str) -> str:
    """Description without hashtags and mentions, capped at 60 characters."""
    cleaned = _MENTION.sub("", _HASHTAG.sub("", description or ""))
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if not cleaned:
        return DEFAULT_TITLE
    if len(cleaned) > TITLE_MAX_LENGTH:
        return cleaned[:TITLE_MAX_LENGTH] + "..."
    return cleaned


def generate_tiktok_url(author_handle: str, aweme_id: str) -> str:
    return f"https://www.tiktok.com/@{author_handle}/video/{aweme_id}"


def _first_url(urls: UrlList | None) -> str | None:
    if urls is None or not urls.url_list:
        return None
    return urls.url_list[0] or None


def _format_issues(exc: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]


def parse_post(item: AwemeItem) -> PostData:
    description = item.desc or ""
    content_type = PostContentType.VIDEO
    video_url = cover_url = None
    duration = None
    images: list[ImageData] = []

    if item.image_post_info is not None and item.image_post_info.images:
        content_type = PostContentType.PHOTO
        images = [
            ImageData(
                url=image.display_image.url_list[0] if image.display_image.url_list else "",
                width=image.display_image.width,
                height=image.display_image.height,
            )
            for image in item.image_post_info.images
        ]
        # Photo posts use their first image as cover
        cover_url = images[0].url or None
    elif item.video is not None:
        video_url = _first_url(item.video.play_addr)
        cover_url = _first_url(item.video.cover)
        duration = item.video.duration

    return PostData(
        tiktok_id=item.aweme_id,
        tiktok_url=item.share_url or generate_tiktok_url(item.author.unique_id, item.aweme_id),
        content_type=content_type,
        title=generate_title(description),
        description=description,
        author_nickname=item.author.nickname,
        author_handle=item.author.unique_id,
        author_avatar=_first_url(item.author.avatar_medium),
        hashtags=extract_hashtags(description),
        mentions=extract_mentions(description),
        view_count=item.statistics.play_count,
        like_count=item.statistics.digg_count,
        share_count=item.statistics.share_count,
        comment_count=item.statistics.comment_count,
        save_count=item.statistics.collect_count or 0,
        duration=duration,
        video_url=video_url,
        cover_url=cover_url,
        music_url=_first_url(item.music.play_url) if item.music is not None else None,
        images=images,
        published_at=datetime.fromtimestamp(item.create_time, tz=timezone.utc),
    )


def parse_profile_videos(handle: str, raw: Any) -> ProfileVideosPage:
    """Validate and map one raw profile-videos payload.

    Raises ``PayloadValidationError`` listing every failing field path, or
    ``UpstreamAPIError`` when the payload carries a non-zero status code.
    """
    try:
        data = ProfileVideosResponse.model_validate(raw)
    except ValidationError as exc:
        issues = _format_issues(exc)
        logger.error("API response validation failed for %s: %s", handle, issues)
        raise PayloadValidationError(issues) from exc

    if data.status_code is not None and data.status_code != 0:
        logger.error(
            "API returned error status %s for %s: %s",
            data.status_code, handle, data.status_msg or "No message",
        )
        raise UpstreamAPIError(f"API returned error status: {data.status_code}", status_code=data.status_code)

    posts = [parse_post(item) for item in data.aweme_list]

    profile = None
    if data.aweme_list:
        author = data.aweme_list[0].author
        profile = ProfileData(
            handle=handle,
            nickname=author.nickname or None,
            avatar=_first_url(author.avatar_medium),
            bio=author.signature or None,
            verified=author.verified or None,
        )

    return ProfileVideosPage(
        posts=posts,
        profile=profile,
        has_more=bool(data.has_more),
        max_cursor=str(data.max_cursor) if data.max_cursor is not None else None,
        min_cursor=str(data.min_cursor) if data.min_cursor is not None else None,
    )


class ScrapingService:
    def __init__(
        self,
        client: ScrapeCreatorsClient,
        query_cache: QueryCache,
        cache_ttl: int = CacheTTL.ONE_HOUR,
    ):
        self._client = client
        self._cache = query_cache
        self._cache_ttl = cache_ttl

    async def scrape_profile_videos(
        self, handle: str, max_cursor: str | None = None, trim: bool = True
    ) -> ProfileVideosPage:
        """Fetch one page of a profile's posts, consulting the lookaside cache first."""
        params = {"handle": handle, "max_cursor": max_cursor or "", "trim": trim}

        cached = await self._cache.get(CacheKeys.PROFILE_VIDEOS, params)
        if cached is not None:
            try:
                page = ProfileVideosPage.model_validate(cached)
            except ValidationError:
                logger.warning("Ignoring malformed cached page for %s", handle)
            else:
                logger.info("Returning cached profile videos for %s", handle)
                return page

        raw = await self._client.get_profile_videos(handle, max_cursor=max_cursor, trim=trim)
        page = parse_profile_videos(handle, raw)
        logger.info(
            "Scraped %d posts for %s (has_more=%s)", len(page.posts), handle, page.has_more,
        )

        await self._cache.put(
            CacheKeys.PROFILE_VIDEOS, page.model_dump(mode="json"), ttl_seconds=self._cache_ttl, params=params,
        )
        return page
