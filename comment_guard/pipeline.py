# -*- coding: utf-8 -*-
"""
comment_guard/pipeline.py
串起：视频列表 -> 拉评论 -> 按 id 去重 -> 关键词判定 -> 提交审核 -> 统计 -> 落盘

一次 run 的约定：
- 设置里没有 apiKey / channelId：直接返回（不读写文件、不发请求）
- 开始时读一次评论文档，结束时整体写回一次
- 单个视频出错只跳过该视频；整体出错不落盘
- 审核失败也照常记录 category 与统计（本地与平台状态可能不一致）
- 同一时刻只跑一个 run：并发触发会等待并复用正在进行的那次结果
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Protocol, Set

import httpx

from . import youtube
from .classifier import SpamClassifier
from .models import SPAM_LABEL, Comment, CommentSnapshot, FetchResult, RunReport, Settings, Video
from .storage import CommentStore, SettingsStore
from .utils import day_hour_bucket, get_logger

logger = get_logger(__name__)

VideoLister = Callable[..., Awaitable[FetchResult[Video]]]
CommentFetcher = Callable[..., Awaitable[FetchResult[Comment]]]


class Actuator(Protocol):
    async def moderate(self, comment_id: str) -> bool: ...


class IngestionPipeline:
    def __init__(
        self,
        settings_store: SettingsStore,
        comment_store: CommentStore,
        classifier: SpamClassifier,
        actuator: Actuator,
        *,
        client: Optional[httpx.AsyncClient] = None,
        list_videos: VideoLister = youtube.list_recent_videos,
        fetch_comments: CommentFetcher = youtube.fetch_comments,
    ):
        self.settings_store = settings_store
        self.comment_store = comment_store
        self.classifier = classifier
        self.actuator = actuator
        self._client = client
        self._list_videos = list_videos
        self._fetch_comments = fetch_comments
        self._inflight: Optional[asyncio.Future] = None
        self.last_report: Optional[RunReport] = None

    @property
    def running(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def run(self) -> RunReport:
        """入口（启动 / 定时 / 手动 共用）；同一时间只有一个 run 在执行"""
        if self.running:
            logger.info("[pipeline] 已有 run 在执行，等待其结果")
            return await asyncio.shield(self._inflight)
        self._inflight = asyncio.ensure_future(self._run_once())
        return await asyncio.shield(self._inflight)

    async def cancel(self) -> None:
        """取消正在进行的 run（退出时用，之后才能关闭共享 client）"""
        if not self.running:
            return
        self._inflight.cancel()
        await asyncio.gather(self._inflight, return_exceptions=True)
        logger.info("[pipeline] 进行中的 run 已取消")

    async def _run_once(self) -> RunReport:
        logger.info("[pipeline] 开始拉取评论…")
        report = RunReport()
        settings = await self.settings_store.load()
        if not settings.is_configured:
            logger.info("[pipeline] API Key 或 Channel ID 未设置，跳过")
            report.skipped = "not configured"
            self.last_report = report
            return report

        try:
            listed = await self._list_videos(settings.channel_id, settings.api_key, client=self._client)
            videos = listed.items_or_empty()
            report.videos = len(videos)

            snapshot = await self.comment_store.load()
            known = snapshot.known_ids()

            for video in videos:
                try:
                    await self._process_video(video, settings, snapshot, known, report)
                except Exception as e:
                    report.failed_videos += 1
                    logger.exception("[pipeline] 视频 %s 处理失败: %s", video.id, e)

            await self.comment_store.save(snapshot)
            report.saved = True
        except Exception as e:
            report.error = repr(e)
            logger.exception("[pipeline] run 失败: %s", e)

        logger.info(
            "[pipeline] 完成 videos=%d fetched=%d new=%d spam=%d moderation_failures=%d",
            report.videos, report.fetched, report.new_comments, report.spam, report.moderation_failures,
        )
        self.last_report = report
        return report

    async def _process_video(
        self,
        video: Video,
        settings: Settings,
        snapshot: CommentSnapshot,
        known: Set[str],
        report: RunReport,
    ) -> None:
        fetched = await self._fetch_comments(video.id, settings.api_key, client=self._client)
        comments = fetched.items_or_empty()
        report.fetched += len(comments)

        # 只按 id 去重；本轮刚加入的也算已知
        new_comments = []
        for c in comments:
            if c.id in known:
                continue
            known.add(c.id)
            new_comments.append(c)

        snapshot.comments.extend(new_comments)
        report.new_comments += len(new_comments)

        for comment in new_comments:
            hit = self.classifier.match(comment.text)
            if hit is None:
                continue
            try:
                ok = await self.actuator.moderate(comment.id)
            except Exception as e:
                logger.exception("[pipeline] 审核调用异常 %s: %s", comment.id, e)
                ok = False
            if ok:
                logger.info("[pipeline] 已标记 spam (%s): %s", hit.source, comment.text[:80])
            else:
                report.moderation_failures += 1
            comment.category = SPAM_LABEL
            day, hour = day_hour_bucket(comment.timestamp)
            snapshot.bump(day, hour)
            report.spam += 1
