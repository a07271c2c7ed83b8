# coding: utf-8
"""
comment_guard/web.py
HTTP 面板（FastAPI）：
- GET  /                看板：评论列表 + spam 统计
- GET  /setup           设置表单
- POST /setup           保存设置并重新调度（cron 无效 => 400）
- GET  /authorize       跳转到 OAuth 授权页
- GET  /oauth2callback  授权回调，换 token
- POST /run             立即跑一次 pipeline
- GET  /healthz
"""

from __future__ import annotations

import html
from typing import Any, Dict, List, Optional

import pandas as pd
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from .auth import OAuthManager
from .models import SPAM_LABEL, CommentSnapshot, Settings
from .pipeline import IngestionPipeline
from .scheduler import Scheduler, build_schedule, validate_cron
from .storage import CommentStore, SettingsStore
from .utils import get_logger, ms_to_local_str

logger = get_logger(__name__)

HOURS = [str(h) for h in range(24)]
SAVED_PLACEHOLDER = " placeholder='(saved, leave blank to keep)'"

# ========== 样式 ==========
_CSS = """
body{font-family:Roboto,Arial,sans-serif;margin:0;padding:20px;background:#f5f6fa}
.wrap{max-width:1200px;margin:0 auto}
.card{background:#fff;padding:20px;border-radius:8px;box-shadow:0 2px 4px rgba(0,0,0,.1);margin-bottom:20px}
.stats-grid{display:grid;grid-template-columns:repeat(auto-fit,minmax(200px,1fr));gap:20px;margin-bottom:20px}
.stat-card h3{margin:0 0 10px 0;color:#666;font-size:16px}
.stat-card .value{font-size:24px;font-weight:bold;color:#2c3e50}
.comment{background:#fff;border:1px solid #eee;border-radius:8px;padding:16px;margin-bottom:16px}
.spam-comment{background:#fff5f5;border-color:#ffcccc}
.comment-header{display:flex;justify-content:space-between;align-items:center;margin-bottom:8px}
.comment-user{font-weight:500;color:#2c3e50}
.badge{padding:4px 8px;border-radius:12px;font-size:12px;background:#e0f7fa;color:#00695c;margin-left:6px}
.spam-comment .status{background:#ffebee;color:#c62828}
.dup{background:#fff8e1;color:#8d6e00}
.comment-text{color:#555;margin-bottom:8px}
.small{color:#888;font-size:.85em}
.hist{border-collapse:collapse;font-size:12px;width:100%}
.hist th,.hist td{border-bottom:1px solid #eee;padding:4px 6px;text-align:center}
.hot{background:#ffcdd2}
.form-group{margin-bottom:16px}
.form-group label{display:block;color:#666;font-size:14px;margin-bottom:6px}
.form-group input,.form-group select{width:100%;padding:10px 14px;border:1px solid #ddd;border-radius:6px;box-sizing:border-box}
.btn{display:inline-block;padding:10px 20px;background:#2ecc71;color:#fff;border:none;border-radius:6px;text-decoration:none;cursor:pointer}
.btn.blue{background:#3498db}
"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{html.escape(title)}</title>
<style>{_CSS}</style>
</head>
<body><div class="wrap">{body}</div></body>
</html>"""


# ========== 看板数据 ==========

def _comments_frame(snapshot: CommentSnapshot) -> pd.DataFrame:
    cols = ["id", "user", "text", "timestamp", "category"]
    df = pd.DataFrame([c.to_dict() for c in snapshot.comments], columns=cols)
    if df.empty:
        return df.assign(is_spam=pd.Series(dtype=bool), duplicate=pd.Series(dtype=bool))
    # 重复 (id, text) 只做展示提示；入库时已按 id 去重
    return df.assign(
        is_spam=df["category"].eq(SPAM_LABEL),
        duplicate=df.duplicated(subset=["id", "text"], keep="first"),
    )


def summarize(snapshot: CommentSnapshot) -> Dict[str, Any]:
    df = _comments_frame(snapshot)
    total = int(len(df))
    spam = int(df["is_spam"].sum()) if total else 0
    return {
        "total": total,
        "spam": spam,
        "spam_pct": round(spam * 100.0 / total, 1) if total else 0.0,
        "spam_users": int(df.loc[df["is_spam"], "user"].nunique()) if total else 0,
        "duplicates": int(df["duplicate"].sum()) if total else 0,
    }


def hourly_frame(snapshot: CommentSnapshot, days: int = 7) -> pd.DataFrame:
    """行：日期（新->旧），列：0..23 小时"""
    if not snapshot.stats:
        return pd.DataFrame(columns=HOURS)
    df = pd.DataFrame.from_dict(snapshot.stats, orient="index")
    df = df.reindex(columns=HOURS).fillna(0).astype(int)
    return df.sort_index(ascending=False).head(days)


# ========== HTML 渲染 ==========

def render_hist_html(df: pd.DataFrame) -> str:
    if df.empty:
        return "<p class='small'>No spam recorded yet.</p>"
    thead = "<tr><th>Day</th>" + "".join(f"<th>{h}</th>" for h in HOURS) + "<th>Total</th></tr>"
    rows = []
    for day, r in df.iterrows():
        tds = [f"<td class='small'>{html.escape(str(day))}</td>"]
        for h in HOURS:
            n = int(r[h])
            tds.append(f"<td class='{'hot' if n else ''}'>{n or ''}</td>")
        tds.append(f"<td><b>{int(r.sum())}</b></td>")
        rows.append("<tr>" + "".join(tds) + "</tr>")
    return f"<table class='hist'><thead>{thead}</thead><tbody>{''.join(rows)}</tbody></table>"


def render_comments_html(df: pd.DataFrame, tz_name: str) -> str:
    if df.empty:
        return "<p class='small'>No comments fetched yet.</p>"
    out = []
    for _, r in df.sort_values("timestamp", ascending=False, kind="mergesort").iterrows():
        spam = bool(r["is_spam"])
        badges = f"<span class='badge status'>{'SPAM' if spam else 'Approved'}</span>"
        if bool(r["duplicate"]):
            badges += "<span class='badge dup'>duplicate</span>"
        out.append(f"""
<div class="comment {'spam-comment' if spam else ''}">
  <div class="comment-header">
    <div class="comment-user">{html.escape(str(r['user']))}</div>
    <div>{badges}</div>
  </div>
  <div class="comment-text">{html.escape(str(r['text']))}</div>
  <div class="small">{ms_to_local_str(int(r['timestamp']), tz_name)}</div>
  <div class="small"><i>ID: {html.escape(str(r['id']))}</i></div>
</div>""")
    return "".join(out)


def render_dashboard(snapshot: CommentSnapshot, tz_name: str, days: int = 7) -> str:
    s = summarize(snapshot)
    cards = [
        ("Total Comments", s["total"]),
        ("Spam Comments", s["spam"]),
        ("Spam Percentage", f"{s['spam_pct']}%"),
        ("Spam Users", s["spam_users"]),
    ]
    cards_html = "".join(
        f"<div class='card stat-card'><h3>{k}</h3><div class='value'>{v}</div></div>" for k, v in cards
    )
    body = f"""
<div class="card"><h1>Comment Management Dashboard</h1>
<a class="btn blue" href="/setup">Settings</a></div>
<div class="stats-grid">{cards_html}</div>
<div class="card"><h3>Spam by hour</h3>{render_hist_html(hourly_frame(snapshot, days))}</div>
<div id="comments-container">{render_comments_html(_comments_frame(snapshot), tz_name)}</div>
"""
    return _page("Admin Dashboard - Comment Management", body)


def _options(current: str, values: List[str], every_label: str) -> str:
    opts = [f"<option value='*'{' selected' if current in ('', '*') else ''}>{every_label}</option>"]
    for v in values:
        sel = " selected" if v == current else ""
        opts.append(f"<option value='{v}'{sel}>{v.zfill(2) if v.isdigit() else v}</option>")
    return "".join(opts)


def render_setup(settings: Settings) -> str:
    fields = (settings.schedule or "").split()
    minute, hour, dow = (fields[0], fields[1], fields[4]) if len(fields) == 5 else ("", "", "")
    days = ["0", "1", "2", "3", "4", "5", "6"]

    def val(v: Optional[str]) -> str:
        return html.escape(v or "", quote=True)

    # 密钥不回显；留空提交 = 保留原值
    key_attr = SAVED_PLACEHOLDER if settings.api_key else " required"
    secret_attr = SAVED_PLACEHOLDER if settings.client_secret else ""

    body = f"""
<div class="card" style="max-width:600px;margin:40px auto">
<h1>Setup Configuration</h1>
<p><a class="btn blue" href="https://console.developers.google.com/apis/credentials" target="_blank">Get API Key from Google Console</a></p>
<form method="POST" action="/setup">
  <div class="form-group"><label for="apiKey">API Key</label>
    <input type="password" name="apiKey" id="apiKey"{key_attr}></div>
  <div class="form-group"><label for="channelId">Channel ID</label>
    <input type="text" name="channelId" id="channelId" required value="{val(settings.channel_id)}"></div>
  <div class="form-group"><label for="clientId">OAuth Client ID</label>
    <input type="text" name="clientId" id="clientId" value="{val(settings.client_id)}"></div>
  <div class="form-group"><label for="clientSecret">OAuth Client Secret</label>
    <input type="password" name="clientSecret" id="clientSecret"{secret_attr}></div>
  <div class="form-group"><label for="scheduleDay">Schedule Day (0-6, Sunday = 0)</label>
    <select name="scheduleDay" id="scheduleDay">{_options(dow, days, "Every Day (*)")}</select></div>
  <div class="form-group"><label for="scheduleHour">Schedule Hour (0-23)</label>
    <select name="scheduleHour" id="scheduleHour">{_options(hour, [str(i) for i in range(24)], "Every Hour (*)")}</select></div>
  <div class="form-group"><label for="scheduleMinute">Schedule Minute (0-59)</label>
    <select name="scheduleMinute" id="scheduleMinute">{_options(minute, [str(i) for i in range(60)], "Every Minute (*)")}</select></div>
  <button type="submit" class="btn">Save Settings</button>
  <a class="btn blue" href="/authorize">Authorize moderation</a>
</form>
</div>
"""
    return _page("Setup - Comment Management", body)


# ========== 路由 ==========

def _clean(v: Any) -> Optional[str]:
    s = str(v).strip() if v is not None else ""
    return s or None


def create_app(
    settings_store: SettingsStore,
    comment_store: CommentStore,
    pipeline: IngestionPipeline,
    scheduler: Scheduler,
    oauth: OAuthManager,
    cfg: Optional[dict] = None,
) -> FastAPI:
    cfg = cfg or {}
    tz_name = cfg.get("display_timezone", "UTC")
    days = int((cfg.get("dashboard") or {}).get("days", 7))

    app = FastAPI(title="comment-guard")

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    @app.get("/", response_class=HTMLResponse)
    async def dashboard():
        settings = await settings_store.load()
        if not settings.is_configured:
            return RedirectResponse("/setup", status_code=302)
        snapshot = await comment_store.load()
        return HTMLResponse(render_dashboard(snapshot, tz_name, days))

    @app.get("/setup", response_class=HTMLResponse)
    async def setup_form():
        return HTMLResponse(render_setup(await settings_store.load()))

    @app.post("/setup")
    async def setup_submit(request: Request):
        form = await request.form()
        expr = build_schedule(
            _clean(form.get("scheduleMinute")),
            _clean(form.get("scheduleHour")),
            _clean(form.get("scheduleDay")),
        )
        if not validate_cron(expr):
            logger.error("[web] 无效的 cron 表达式: %r", expr)
            return JSONResponse({"error": "Invalid cron expression"}, status_code=400)

        current = await settings_store.load()
        settings = Settings(
            api_key=_clean(form.get("apiKey")) or current.api_key,
            channel_id=_clean(form.get("channelId")),
            client_id=_clean(form.get("clientId")),
            client_secret=_clean(form.get("clientSecret")) or current.client_secret,
            schedule=expr,
        )
        await settings_store.save(settings)
        scheduler.reschedule(expr)
        return RedirectResponse("/", status_code=303)

    @app.get("/authorize")
    async def authorize():
        url = await oauth.authorization_url()
        if not url:
            return JSONResponse({"error": "OAuth client id/secret not configured"}, status_code=400)
        return RedirectResponse(url, status_code=302)

    @app.get("/oauth2callback")
    async def oauth2callback(code: Optional[str] = None, state: Optional[str] = None, error: Optional[str] = None):
        if error or not code:
            return JSONResponse({"error": error or "missing authorization code"}, status_code=400)
        try:
            await oauth.exchange_code(code, state)
        except Exception as e:
            logger.error("[web] token 交换失败: %s", e)
            return JSONResponse({"error": "token exchange failed"}, status_code=400)
        return RedirectResponse("/", status_code=303)

    @app.post("/run")
    async def run_now():
        report = await pipeline.run()
        return report.to_dict()

    return app
