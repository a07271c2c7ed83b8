# -*- coding: utf-8 -*-
"""
tests/test_storage.py
JSON 文档读写：round-trip、缺失/损坏文件 => 默认值、原子写不留临时文件
"""
import asyncio
import json

from comment_guard.models import SPAM_LABEL, Comment, CommentSnapshot, Settings
from comment_guard.storage import CommentStore, SettingsStore, TokenStore


def make_snapshot() -> CommentSnapshot:
    snap = CommentSnapshot(
        comments=[
            Comment(id="a1", user="alice", text="nice <b>video</b>", timestamp=1714570200000),
            Comment(id="b2", user="bob", text="MAX33 bonus", timestamp=1714573800000, category=SPAM_LABEL),
        ],
    )
    snap.bump("2024-05-01", "13")
    snap.bump("2024-05-01", "13")
    snap.bump("2024-05-02", "0")
    return snap


def test_comment_store_round_trip(tmp_path):
    store = CommentStore(tmp_path / "db.json")
    snap = make_snapshot()

    async def go():
        await store.save(snap)
        return await store.load()

    loaded = asyncio.run(go())
    assert loaded.comments == snap.comments
    assert loaded.stats == {"2024-05-01": {"13": 2}, "2024-05-02": {"0": 1}}


def test_comment_document_shape(tmp_path):
    path = tmp_path / "db.json"
    asyncio.run(CommentStore(path).save(make_snapshot()))
    doc = json.loads(path.read_text(encoding="utf-8"))
    assert set(doc) == {"comments", "stats"}
    # 未分类的评论不写 category 字段
    assert "category" not in doc["comments"][0]
    assert doc["comments"][1]["category"] == SPAM_LABEL
    assert doc["stats"]["2024-05-01"]["13"] == 2


def test_missing_and_malformed_documents_are_defaults(tmp_path):
    bad = tmp_path / "db.json"
    bad.write_text("{not json", encoding="utf-8")

    async def go():
        return (
            await CommentStore(bad).load(),
            await CommentStore(tmp_path / "nope.json").load(),
            await SettingsStore(tmp_path / "settings.json").load(),
            await TokenStore(tmp_path / "token.json").load(),
        )

    snap, empty, settings, token = asyncio.run(go())
    assert snap.comments == [] and snap.stats == {}
    assert empty.comments == []
    assert settings == Settings() and not settings.is_configured
    assert token is None


def test_settings_round_trip_and_keys(tmp_path, configured):
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    s = Settings(api_key="K", channel_id="UC1", schedule="0 * * * *", client_id="cid", client_secret="sec")

    async def go():
        await store.save(s)
        return await store.load()

    assert asyncio.run(go()) == s
    doc = json.loads(path.read_text(encoding="utf-8"))
    assert doc == {
        "apiKey": "K",
        "schedule": "0 * * * *",
        "channelId": "UC1",
        "clientId": "cid",
        "clientSecret": "sec",
    }
    assert configured.is_configured


def test_atomic_write_leaves_no_temp_files(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")

    async def go():
        for i in range(3):
            await store.save(Settings(api_key=f"k{i}", channel_id="c"))

    asyncio.run(go())
    assert sorted(p.name for p in tmp_path.iterdir()) == ["settings.json"]


def test_snapshot_bump_only_increments():
    snap = CommentSnapshot()
    snap.bump("2024-01-01", "5")
    snap.bump("2024-01-01", "5")
    snap.bump("2024-01-01", "6")
    assert snap.stats == {"2024-01-01": {"5": 2, "6": 1}}
    assert snap.known_ids() == set()
