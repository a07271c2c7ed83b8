# -*- coding: utf-8 -*-
"""
comment_guard/storage.py
JSON 文档持久化（每个 store 独占一个文件）：
- SettingsStore: settings.json
- CommentStore:  db.json（评论列表 + 垃圾评论小时统计）
- TokenStore:    token.json（OAuth 凭据，唯一的持久化凭据来源）
读：文件缺失/损坏 => 默认文档，不报错
写：整体覆盖，临时文件 + os.replace 原子替换
文件 I/O 放到线程里跑，不阻塞事件循环。
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .models import CommentSnapshot, Settings
from .utils import get_logger, read_json, write_json_atomic

logger = get_logger(__name__)


class _JsonDocument:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    async def _read(self) -> Optional[Any]:
        return await asyncio.to_thread(read_json, self.path)

    async def _write(self, data: Any) -> None:
        await asyncio.to_thread(write_json_atomic, self.path, data)


class SettingsStore(_JsonDocument):
    async def load(self) -> Settings:
        data = await self._read()
        if not isinstance(data, dict):
            return Settings()
        return Settings.from_dict(data)

    async def save(self, settings: Settings) -> None:
        await self._write(settings.to_dict())
        logger.info("[storage] settings saved -> %s", self.path)


class CommentStore(_JsonDocument):
    async def load(self) -> CommentSnapshot:
        data = await self._read()
        if not isinstance(data, dict):
            return CommentSnapshot()
        return CommentSnapshot.from_dict(data)

    async def save(self, snapshot: CommentSnapshot) -> None:
        await self._write(snapshot.to_dict())
        logger.debug("[storage] %d comments saved -> %s", len(snapshot.comments), self.path)


class TokenStore(_JsonDocument):
    """保存身份提供方返回的凭据对象（原样），包含 expiry 字段"""

    async def load(self) -> Optional[Dict[str, Any]]:
        data = await self._read()
        return data if isinstance(data, dict) else None

    async def save(self, token: Dict[str, Any]) -> None:
        await self._write(token)
        logger.info("[storage] oauth token saved -> %s", self.path)
