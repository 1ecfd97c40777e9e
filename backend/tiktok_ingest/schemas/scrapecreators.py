"""Raw ScrapeCreators profile-videos payload.

Only the fields the parser reads are declared; everything else passes through.
"""
from pydantic import BaseModel, ConfigDict


class UrlList(BaseModel):
    url_list: list[str] = []


class DisplayImage(BaseModel):
    height: int
    width: int
    url_list: list[str]


class ImagePost(BaseModel):
    display_image: DisplayImage


class ImagePostInfo(BaseModel):
    images: list[ImagePost]


class Video(BaseModel):
    model_config = ConfigDict(extra="allow")

    height: int | None = None
    width: int | None = None
    play_addr: UrlList | None = None
    cover: UrlList | None = None
    duration: float | None = None


class Music(BaseModel):
    id: str | None = None
    title: str | None = None
    author: str | None = None
    play_url: UrlList | None = None


class Author(BaseModel):
    model_config = ConfigDict(extra="allow")

    nickname: str = ""
    unique_id: str = ""
    avatar_medium: UrlList | None = None
    avatar_larger: UrlList | None = None
    signature: str | None = None
    verified: bool | None = None


class Statistics(BaseModel):
    model_config = ConfigDict(extra="allow")

    play_count: int = 0
    digg_count: int = 0
    comment_count: int = 0
    share_count: int = 0
    collect_count: int = 0


class AwemeItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    aweme_id: str
    desc: str = ""
    create_time: int
    author: Author
    statistics: Statistics
    video: Video | None = None
    image_post_info: ImagePostInfo | None = None
    music: Music | None = None
    share_url: str | None = None


class ProfileVideosResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    aweme_list: list[AwemeItem] = []
    has_more: int | bool | None = None
    max_cursor: int | str | None = None
    min_cursor: int | str | None = None
    status_code: int | None = None
    status_msg: str | None = None
