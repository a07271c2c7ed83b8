# -*- coding: utf-8 -*-
"""
tests/test_web.py
HTTP 面板：跳转、看板统计、setup 表单保存与 cron 校验、OAuth 回调、手动触发
"""
import asyncio
import json

from fastapi.testclient import TestClient

from comment_guard.models import SPAM_LABEL, Comment, CommentSnapshot, RunReport, Settings
from comment_guard.storage import CommentStore, SettingsStore
from comment_guard.web import create_app, hourly_frame, summarize


class FakeScheduler:
    def __init__(self):
        self.exprs = []

    def reschedule(self, expr):
        self.exprs.append(expr)
        return True


class FakePipeline:
    def __init__(self):
        self.runs = 0

    async def run(self):
        self.runs += 1
        return RunReport(videos=1, fetched=2, new_comments=2, spam=1, saved=True)


class FakeOAuth:
    def __init__(self, url="https://accounts.google.com/o/oauth2/auth?client_id=cid", fail=False):
        self.url = url
        self.fail = fail
        self.codes = []

    async def authorization_url(self):
        return self.url

    async def exchange_code(self, code, state=None):
        if self.fail:
            raise RuntimeError("invalid_grant")
        self.codes.append((code, state))
        return {"token": "t"}


def make_snapshot() -> CommentSnapshot:
    snap = CommentSnapshot(comments=[
        Comment(id="a", user="alice", text="hello <script>x</script>", timestamp=1714570200000),
        Comment(id="b", user="bob", text="MAX33", timestamp=1714573800000, category=SPAM_LABEL),
        Comment(id="c", user="bob", text="max 33 again", timestamp=1714577400000, category=SPAM_LABEL),
        # 重复的 (id, text)：只做展示提示
        Comment(id="a", user="alice", text="hello <script>x</script>", timestamp=1714570200000),
    ])
    snap.bump("2024-05-01", "13")
    snap.bump("2024-05-01", "14")
    snap.bump("2024-05-02", "0")
    return snap


def make_client(tmp_path, settings=None, snapshot=None, oauth=None):
    settings_store = SettingsStore(tmp_path / "settings.json")
    comment_store = CommentStore(tmp_path / "db.json")

    async def seed():
        if settings is not None:
            await settings_store.save(settings)
        if snapshot is not None:
            await comment_store.save(snapshot)

    asyncio.run(seed())
    scheduler = FakeScheduler()
    pipeline = FakePipeline()
    app = create_app(
        settings_store, comment_store, pipeline, scheduler, oauth or FakeOAuth(),
        {"display_timezone": "UTC", "dashboard": {"days": 7}},
    )
    return TestClient(app), scheduler, pipeline


CONFIGURED = Settings(api_key="K", channel_id="UC1", schedule="0 * * * *")


def test_dashboard_redirects_when_not_configured(tmp_path):
    client, _, _ = make_client(tmp_path)
    r = client.get("/", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/setup"


def test_dashboard_renders_stats(tmp_path):
    client, _, _ = make_client(tmp_path, CONFIGURED, make_snapshot())
    r = client.get("/")
    assert r.status_code == 200
    body = r.text
    assert "Comment Management Dashboard" in body
    assert "SPAM" in body and "Approved" in body
    assert "duplicate" in body
    # 评论正文做了转义
    assert "<script>x</script>" not in body
    assert "&lt;script&gt;" in body


def test_summary_numbers():
    s = summarize(make_snapshot())
    assert s["total"] == 4
    assert s["spam"] == 2
    assert s["spam_pct"] == 50.0
    assert s["spam_users"] == 1
    assert s["duplicates"] == 1
    empty = summarize(CommentSnapshot())
    assert empty == {"total": 0, "spam": 0, "spam_pct": 0.0, "spam_users": 0, "duplicates": 0}


def test_hourly_frame():
    df = hourly_frame(make_snapshot(), days=7)
    assert list(df.index) == ["2024-05-02", "2024-05-01"]
    assert df.loc["2024-05-01", "13"] == 1
    assert df.loc["2024-05-01", "0"] == 0
    assert int(df.loc["2024-05-01"].sum()) == 2
    assert hourly_frame(CommentSnapshot()).empty


def test_setup_form_prefills(tmp_path):
    settings = Settings(api_key="MYKEY", channel_id="UCX", schedule="5 7 * * 2",
                        client_id="cid", client_secret="TOPSECRET")
    client, _, _ = make_client(tmp_path, settings)
    r = client.get("/setup")
    assert r.status_code == 200
    assert 'value="UCX"' in r.text
    assert 'value="cid"' in r.text
    assert "<option value='7' selected>" in r.text
    # 密钥不回显
    assert "MYKEY" not in r.text
    assert "TOPSECRET" not in r.text


def test_setup_blank_secrets_keep_saved_values(tmp_path):
    settings = Settings(api_key="OLDKEY", channel_id="UC1", client_id="cid", client_secret="OLDSECRET")
    client, scheduler, _ = make_client(tmp_path, settings)
    r = client.post("/setup", data={
        "apiKey": "",
        "channelId": "UC2",
        "clientId": "cid",
        "clientSecret": "",
        "scheduleMinute": "0",
    }, follow_redirects=False)
    assert r.status_code == 303
    doc = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert doc["apiKey"] == "OLDKEY"
    assert doc["clientSecret"] == "OLDSECRET"
    assert doc["channelId"] == "UC2"
    assert scheduler.exprs == ["0 * * * *"]


def test_setup_saves_and_reschedules(tmp_path):
    client, scheduler, _ = make_client(tmp_path)
    r = client.post("/setup", data={
        "apiKey": "KEY",
        "channelId": "UC123",
        "clientId": "cid",
        "clientSecret": "",
        "scheduleMinute": "30",
        "scheduleHour": "*",
        "scheduleDay": "1",
    }, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    doc = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert doc == {"apiKey": "KEY", "channelId": "UC123", "clientId": "cid", "schedule": "30 * * * 1"}
    assert scheduler.exprs == ["30 * * * 1"]


def test_setup_rejects_invalid_cron(tmp_path):
    client, scheduler, _ = make_client(tmp_path, CONFIGURED)
    r = client.post("/setup", data={
        "apiKey": "KEY", "channelId": "UC123", "scheduleMinute": "61",
    })
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid cron expression"}
    assert scheduler.exprs == []
    # 原设置不动
    doc = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert doc["schedule"] == "0 * * * *"


def test_authorize_redirects(tmp_path):
    client, _, _ = make_client(tmp_path, CONFIGURED)
    r = client.get("/authorize", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"].startswith("https://accounts.google.com/")

    client, _, _ = make_client(tmp_path, CONFIGURED, oauth=FakeOAuth(url=None))
    assert client.get("/authorize", follow_redirects=False).status_code == 400


def test_oauth_callback(tmp_path):
    oauth = FakeOAuth()
    client, _, _ = make_client(tmp_path, CONFIGURED, oauth=oauth)
    r = client.get("/oauth2callback", params={"code": "abc", "state": "xyz"}, follow_redirects=False)
    assert r.status_code == 303
    assert oauth.codes == [("abc", "xyz")]

    assert client.get("/oauth2callback").status_code == 400
    assert client.get("/oauth2callback", params={"error": "access_denied"}).status_code == 400

    client, _, _ = make_client(tmp_path, CONFIGURED, oauth=FakeOAuth(fail=True))
    assert client.get("/oauth2callback", params={"code": "abc"}).status_code == 400


def test_run_now_and_healthz(tmp_path):
    client, _, pipeline = make_client(tmp_path, CONFIGURED)
    r = client.post("/run")
    assert r.status_code == 200
    assert r.json()["spam"] == 1
    assert pipeline.runs == 1
    assert client.get("/healthz").json() == {"ok": True}
