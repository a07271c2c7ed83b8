# -*- coding: utf-8 -*-
"""
models.py
数据模型。JSON 字段名与已有的 db.json / settings.json 保持一致：
- 评论文档: { comments: [{id, user, text, timestamp, category?}], stats: {date: {hour: count}} }
- 设置文档: { apiKey?, schedule?, channelId?, clientId?, clientSecret? }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Set, TypeVar

SPAM_LABEL = "spam"

# {"2024-05-01": {"13": 2}}
SpamStats = Dict[str, Dict[str, int]]

T = TypeVar("T")


@dataclass
class Comment:
    # 平台分配的评论ID（去重依据）
    id: str
    # 作者显示名（不唯一）
    user: str
    # 评论正文（可能含 HTML）
    text: str
    # 发布时间，UTC 毫秒
    timestamp: int
    # 分类标签：None 表示未分类/非垃圾；SPAM_LABEL 表示已标记
    category: Optional[str] = None

    @property
    def is_spam(self) -> bool:
        return self.category == SPAM_LABEL

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "user": self.user,
            "text": self.text,
            "timestamp": self.timestamp,
        }
        if self.category is not None:
            out["category"] = self.category
        return out

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Comment":
        return cls(
            id=str(d.get("id", "")),
            user=str(d.get("user", "") or ""),
            text=str(d.get("text", "") or ""),
            timestamp=int(d.get("timestamp", 0) or 0),
            category=d.get("category"),
        )


@dataclass(frozen=True)
class Video:
    id: str
    title: str


@dataclass(frozen=True)
class Settings:
    """setup 表单整体覆盖写入；每次外部调用前读取"""
    api_key: Optional[str] = None
    schedule: Optional[str] = None
    channel_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and bool(self.channel_id)

    @property
    def has_oauth_client(self) -> bool:
        return bool(self.client_id) and bool(self.client_secret)

    def to_dict(self) -> Dict[str, Any]:
        pairs = [
            ("apiKey", self.api_key),
            ("schedule", self.schedule),
            ("channelId", self.channel_id),
            ("clientId", self.client_id),
            ("clientSecret", self.client_secret),
        ]
        return {k: v for k, v in pairs if v is not None}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Settings":
        def g(k: str) -> Optional[str]:
            v = d.get(k)
            return str(v) if v is not None else None

        return cls(
            api_key=g("apiKey"),
            schedule=g("schedule"),
            channel_id=g("channelId"),
            client_id=g("clientId"),
            client_secret=g("clientSecret"),
        )


@dataclass
class CommentSnapshot:
    """评论文档在内存中的副本：一次 run 开始时读入，结束时整体写回"""
    comments: List[Comment] = field(default_factory=list)
    stats: SpamStats = field(default_factory=dict)

    def known_ids(self) -> Set[str]:
        return {c.id for c in self.comments}

    def bump(self, day: str, hour: str) -> None:
        """统计桶 +1；桶不存在时惰性创建，只增不减"""
        hours = self.stats.setdefault(day, {})
        hours[hour] = hours.get(hour, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "comments": [c.to_dict() for c in self.comments],
            "stats": {day: dict(hours) for day, hours in self.stats.items()},
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CommentSnapshot":
        raw_comments = d.get("comments") or []
        raw_stats = d.get("stats") or {}
        comments = [Comment.from_dict(c) for c in raw_comments if isinstance(c, dict)]
        stats: SpamStats = {}
        if isinstance(raw_stats, dict):
            for day, hours in raw_stats.items():
                if isinstance(hours, dict):
                    stats[str(day)] = {str(h): int(n) for h, n in hours.items()}
        return cls(comments=comments, stats=stats)


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """
    拉取结果：显式区分成功与失败。
    调用方用 items_or_empty() 把失败合并为空列表（fail-open 策略写在调用处）。
    """
    items: List[T] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def items_or_empty(self) -> List[T]:
        return list(self.items) if self.error is None else []

    @classmethod
    def success(cls, items: List[T]) -> "FetchResult[T]":
        return cls(items=list(items))

    @classmethod
    def failure(cls, reason: str) -> "FetchResult[T]":
        return cls(items=[], error=reason)


@dataclass
class RunReport:
    """一次 pipeline run 的计数，返回给 /run 并写日志"""
    videos: int = 0
    fetched: int = 0
    new_comments: int = 0
    spam: int = 0
    moderation_failures: int = 0
    failed_videos: int = 0
    saved: bool = False
    skipped: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "videos": self.videos,
            "fetched": self.fetched,
            "new_comments": self.new_comments,
            "spam": self.spam,
            "moderation_failures": self.moderation_failures,
            "failed_videos": self.failed_videos,
            "saved": self.saved,
            "skipped": self.skipped,
            "error": self.error,
        }
