# -*- coding: utf-8 -*-
"""
comment_guard/moderation.py
审核执行器：把判定为 spam 的评论提交给平台（rejected 或 heldForReview）。
尽力而为：失败只打日志、返回 False，不打断 pipeline。
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol

import httpx
from google.auth.exceptions import GoogleAuthError

from . import youtube
from .auth import AuthError
from .utils import get_logger

logger = get_logger(__name__)


class ModerationPolicy(str, Enum):
    REJECT = "rejected"
    HOLD = "heldForReview"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ModerationPolicy":
        if not value:
            return cls.REJECT
        for member in cls:
            if value == member.value or value.lower() == member.name.lower():
                return member
        raise ValueError(f"unknown moderation status: {value!r}")


class TokenProvider(Protocol):
    async def access_token(self) -> str: ...


class ModerationActuator:
    def __init__(
        self,
        tokens: TokenProvider,
        policy: ModerationPolicy = ModerationPolicy.REJECT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._tokens = tokens
        self.policy = policy
        self._client = client

    async def moderate(self, comment_id: str) -> bool:
        try:
            token = await self._tokens.access_token()
            await youtube.set_moderation_status(
                comment_id, self.policy.value, token, client=self._client
            )
        except AuthError as e:
            logger.error("[moderation] %s 未执行: %s", comment_id, e)
            return False
        except (httpx.HTTPError, GoogleAuthError) as e:
            logger.error("[moderation] %s 提交失败: %s", comment_id, e)
            return False
        logger.info("[moderation] %s -> %s", comment_id, self.policy.value)
        return True
