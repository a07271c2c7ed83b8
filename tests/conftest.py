# -*- coding: utf-8 -*-
# === 保证能正确 import comment_guard（未 pip install 时也能跑） ===
import os
import sys

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import httpx
import pytest

from comment_guard import youtube
from comment_guard.models import Settings
from comment_guard.storage import CommentStore, SettingsStore


def make_client(handler) -> httpx.AsyncClient:
    """假的 YouTube API：handler(request) -> httpx.Response"""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=youtube.API_BASE)


def video_item(video_id: str, title: str = "video") -> dict:
    return {"id": {"kind": "youtube#video", "videoId": video_id}, "snippet": {"title": title}}


def thread_item(comment_id: str, text: str, user: str = "someone",
                published: str = "2024-05-01T13:30:00Z") -> dict:
    return {
        "id": comment_id,
        "snippet": {
            "topLevelComment": {
                "id": comment_id,
                "snippet": {
                    "authorDisplayName": user,
                    "textDisplay": text,
                    "publishedAt": published,
                },
            }
        },
    }


class FakeActuator:
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.calls = []

    async def moderate(self, comment_id: str) -> bool:
        self.calls.append(comment_id)
        return self.ok


@pytest.fixture
def settings_store(tmp_path):
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def comment_store(tmp_path):
    return CommentStore(tmp_path / "db.json")


@pytest.fixture
def configured():
    return Settings(api_key="KEY", channel_id="UC123", schedule="*/5 * * * *")
