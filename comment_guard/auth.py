# -*- coding: utf-8 -*-
"""
comment_guard/auth.py
OAuth（审核接口必须用用户授权，API key 不够）：
- authorization_url(): 生成授权链接，运营人员手动打开
- exchange_code():     /oauth2callback 拿 code 换 token，写入 token.json
- access_token():      读 token.json；过期前自动 refresh 并回写
具体协议交给 google-auth-oauthlib / google-auth，这里只管状态和持久化。
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional, Tuple

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from .models import Settings
from .storage import SettingsStore, TokenStore
from .utils import get_logger

logger = get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/youtube.force-ssl"]
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"


class AuthError(Exception):
    pass


class AuthorizationRequired(AuthError):
    """没有可用凭据；需要人工打开 auth_url 完成授权"""

    def __init__(self, auth_url: Optional[str]):
        self.auth_url = auth_url
        if auth_url:
            msg = f"authorization required, visit: {auth_url}"
        else:
            msg = "authorization required, OAuth client id/secret not configured"
        super().__init__(msg)


def client_config(settings: Settings) -> Dict[str, Any]:
    return {
        "web": {
            "client_id": settings.client_id,
            "client_secret": settings.client_secret,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
        }
    }


class OAuthManager:
    def __init__(self, settings_store: SettingsStore, token_store: TokenStore, redirect_uri: str):
        self._settings_store = settings_store
        self._token_store = token_store
        self.redirect_uri = redirect_uri
        # state -> Flow；同一个 Flow 才带着 PKCE code_verifier
        self._pending: Dict[str, Flow] = {}

    def _new_flow(self, settings: Settings) -> Flow:
        return Flow.from_client_config(
            client_config(settings),
            scopes=SCOPES,
            redirect_uri=self.redirect_uri,
        )

    async def authorization_url(self) -> Optional[str]:
        settings = await self._settings_store.load()
        if not settings.has_oauth_client:
            return None
        url, _ = self._begin(settings)
        return url

    def _begin(self, settings: Settings) -> Tuple[str, str]:
        flow = self._new_flow(settings)
        url, state = flow.authorization_url(access_type="offline", prompt="consent")
        self._pending[state] = flow
        return url, state

    async def exchange_code(self, code: str, state: Optional[str] = None) -> Dict[str, Any]:
        settings = await self._settings_store.load()
        if not settings.has_oauth_client:
            raise AuthError("OAuth client id/secret not configured")
        flow = self._pending.pop(state, None) if state else None
        if flow is None:
            flow = self._new_flow(settings)
        await asyncio.to_thread(flow.fetch_token, code=code)
        token = json.loads(flow.credentials.to_json())
        await self._token_store.save(token)
        logger.info("[auth] 授权完成，token 已保存")
        return token

    async def access_token(self) -> str:
        """
        返回可用的 access token。
        没有 token => AuthorizationRequired（带授权链接）
        临近过期 => refresh 后写回 token.json 再返回
        """
        data = await self._token_store.load()
        if not data:
            raise AuthorizationRequired(await self.authorization_url())
        try:
            creds = Credentials.from_authorized_user_info(data, SCOPES)
        except ValueError as e:
            logger.warning("[auth] token.json 内容不完整: %s", e)
            raise AuthorizationRequired(await self.authorization_url()) from e

        if creds.valid:
            return creds.token

        if not creds.refresh_token:
            raise AuthorizationRequired(await self.authorization_url())
        try:
            await asyncio.to_thread(creds.refresh, Request())
        except RefreshError as e:
            logger.error("[auth] refresh token 失效: %s", e)
            raise AuthorizationRequired(await self.authorization_url()) from e
        await self._token_store.save(json.loads(creds.to_json()))
        logger.info("[auth] access token 已刷新")
        return creds.token
