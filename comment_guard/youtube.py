# -*- coding: utf-8 -*-
"""
comment_guard/youtube.py
YouTube Data API v3 调用（httpx 异步）：
- list_recent_videos: 频道最近 5 个视频（按发布时间倒序）
- fetch_comments:     单个视频最多 10 条顶层评论
- set_moderation_status: 修改评论审核状态（需要 OAuth access token）
拉取类接口不抛异常，统一返回 FetchResult；失败原因写日志。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from .models import Comment, FetchResult, Video
from .utils import get_logger, iso_to_ms

logger = get_logger(__name__)

API_BASE = "https://www.googleapis.com/youtube/v3"
MAX_VIDEOS = 5
MAX_COMMENTS = 10

# -------------------- 共享 client --------------------

_CLIENT: Optional[httpx.AsyncClient] = None


def _ensure_client() -> httpx.AsyncClient:
    """全局复用一个 httpx AsyncClient，避免频繁建连。"""
    global _CLIENT
    if _CLIENT is None:
        _CLIENT = httpx.AsyncClient(
            base_url=API_BASE,
            timeout=15.0,
            headers={"User-Agent": "comment-guard/1.0"},
        )
    return _CLIENT


async def close_client() -> None:
    global _CLIENT
    if _CLIENT is not None:
        await _CLIENT.aclose()
        _CLIENT = None


def _api_error(resp: httpx.Response) -> str:
    """从 Google API 的错误 JSON 里取 message；取不到就截断 body"""
    try:
        msg = resp.json().get("error", {}).get("message")
    except ValueError:
        msg = None
    return f"http {resp.status_code}: {msg or (resp.text or '')[:300]}"


async def _get(client: httpx.AsyncClient, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
    resp = await client.get(path, params=params)
    if resp.status_code != 200:
        raise httpx.HTTPStatusError(_api_error(resp), request=resp.request, response=resp)
    return resp.json()


# -------------------- 视频列表 --------------------

async def list_recent_videos(
    channel_id: str,
    api_key: Optional[str],
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> FetchResult[Video]:
    if not api_key:
        return FetchResult.success([])
    client = client or _ensure_client()
    params = {
        "part": "snippet",
        "channelId": channel_id,
        "maxResults": MAX_VIDEOS,
        "order": "date",
        "type": "video",
        "key": api_key,
    }
    try:
        data = await _get(client, "/search", params)
    except (httpx.HTTPError, ValueError) as e:
        logger.error("[youtube] 拉取频道 %s 视频失败: %s", channel_id, e)
        return FetchResult.failure(str(e))

    items = data.get("items") or []
    if not items:
        logger.info("[youtube] 频道 %s 没有找到视频", channel_id)
        return FetchResult.success([])

    videos: List[Video] = []
    for item in items[:MAX_VIDEOS]:
        video_id = (item.get("id") or {}).get("videoId")
        if not video_id:
            continue
        title = (item.get("snippet") or {}).get("title", "")
        videos.append(Video(id=video_id, title=title))
    return FetchResult.success(videos)


# -------------------- 评论 --------------------

def _to_comment(item: Dict[str, Any]) -> Comment:
    snippet = item["snippet"]["topLevelComment"]["snippet"]
    return Comment(
        id=item["id"],
        user=snippet.get("authorDisplayName", ""),
        text=snippet.get("textDisplay", ""),
        timestamp=iso_to_ms(snippet.get("publishedAt")),
    )


async def fetch_comments(
    video_id: str,
    api_key: Optional[str],
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> FetchResult[Comment]:
    if not video_id:
        return FetchResult.success([])
    if not api_key:
        logger.error("[youtube] API key 缺失，无法拉取评论")
        return FetchResult.failure("api key missing")
    client = client or _ensure_client()
    logger.info("[youtube] 拉取视频 %s 的评论", video_id)
    params = {
        "part": "snippet",
        "videoId": video_id,
        "maxResults": MAX_COMMENTS,
        "key": api_key,
    }
    try:
        data = await _get(client, "/commentThreads", params)
        comments = [_to_comment(it) for it in (data.get("items") or [])[:MAX_COMMENTS]]
    except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
        logger.error("[youtube] 拉取视频 %s 评论失败: %s", video_id, e)
        return FetchResult.failure(str(e))
    return FetchResult.success(comments)


# -------------------- 审核 --------------------

async def set_moderation_status(
    comment_id: str,
    status: str,
    access_token: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> None:
    """成功返回 None（API 回 204）；失败抛 httpx.HTTPError，由调用方决定怎么处理"""
    client = client or _ensure_client()
    resp = await client.post(
        "/comments/setModerationStatus",
        params={"id": comment_id, "moderationStatus": status},
        headers={"Authorization": f"Bearer {access_token}"},
    )
    if resp.status_code not in (200, 204):
        raise httpx.HTTPStatusError(_api_error(resp), request=resp.request, response=resp)
