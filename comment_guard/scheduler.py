# -*- coding: utf-8 -*-
"""
comment_guard/scheduler.py
按 cron 表达式（5 段：分 时 日 月 周）定时触发 pipeline。
表达式求值交给 croniter；这里只负责 sleep 到下一次触发点再调用 run()。
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional

from croniter import croniter

from .utils import get_logger

logger = get_logger(__name__)


def validate_cron(expr: Optional[str]) -> bool:
    if not expr or len(expr.split()) != 5:
        return False
    return croniter.is_valid(expr)


def _field(value: Optional[str]) -> str:
    v = (value or "").strip()
    return v if v else "*"


def build_schedule(minute: Optional[str], hour: Optional[str], day_of_week: Optional[str]) -> str:
    """setup 表单 -> cron；空值或 '*' 表示“每…”"""
    return f"{_field(minute)} {_field(hour)} * * {_field(day_of_week)}"


def _now() -> datetime:
    return datetime.now()


def next_fire(expr: str, now: Optional[datetime] = None) -> datetime:
    return croniter(expr, now or _now()).get_next(datetime)


class Scheduler:
    def __init__(self, pipeline):
        self._pipeline = pipeline
        self._task: Optional[asyncio.Task] = None
        self.expr: Optional[str] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, expr: Optional[str]) -> bool:
        """启动定时任务；表达式无效则不调度，返回 False"""
        if not validate_cron(expr):
            if expr:
                logger.error("[scheduler] 无效的 cron 表达式: %r", expr)
            return False
        self.stop()
        self.expr = expr
        self._task = asyncio.create_task(self._loop(expr))
        logger.info("[scheduler] 已按 %r 调度", expr)
        return True

    def reschedule(self, expr: Optional[str]) -> bool:
        return self.start(expr)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
            self.expr = None

    async def _loop(self, expr: str) -> None:
        last: Optional[datetime] = None
        try:
            while True:
                now = _now()
                # sleep 可能比墙钟早醒；从上一次触发点往后算，同一时间点不重复触发
                base = now if last is None or now > last else last
                fire_at = next_fire(expr, base)
                delay = max(0.0, (fire_at - now).total_seconds())
                logger.debug("[scheduler] 下次触发 %s（%.0fs 后）", fire_at, delay)
                await asyncio.sleep(delay)
                last = fire_at
                try:
                    await self._pipeline.run()
                except Exception as e:
                    logger.exception("[scheduler] run 异常: %s", e)
        except asyncio.CancelledError:
            logger.info("[scheduler] cancelled")
            raise
