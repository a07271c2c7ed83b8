# comment_guard/main.py
# 串起：settings/comment store -> pipeline -> scheduler -> web
# 启动时先跑一次 pipeline，之后按 settings.schedule 的 cron 定时跑；
# web 与 pipeline 共用一个事件循环。

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn
import yaml

from . import youtube
from .auth import OAuthManager
from .classifier import SpamClassifier
from .moderation import ModerationActuator, ModerationPolicy
from .pipeline import IngestionPipeline
from .scheduler import Scheduler
from .storage import CommentStore, SettingsStore, TokenStore
from .utils import get_logger, set_log_level
from .web import create_app

ROOT = Path(__file__).resolve().parents[1]

logger = get_logger(__name__)

DEFAULT_CFG: Dict[str, Any] = {
    "server": {"host": "127.0.0.1", "port": 3000},
    "paths": {
        "settings": "settings.json",
        "comments": "db.json",
        "token": "token.json",
        "keywords": "ops/keywords.yml",
    },
    "moderation": {"status": "rejected"},
    "oauth": {"redirect_uri": "http://localhost:3000/oauth2callback"},
    "display_timezone": "UTC",
    "dashboard": {"days": 7},
    "log_level": "INFO",
}


def load_cfg(path: Optional[Path] = None) -> dict:
    """ops/config.yml 可选；不存在就用默认。每个顶层段做一层浅合并。"""
    cfg_path = Path(path or os.environ.get("COMMENT_GUARD_CONFIG") or ROOT / "ops" / "config.yml")
    out = {k: (dict(v) if isinstance(v, dict) else v) for k, v in DEFAULT_CFG.items()}
    if not cfg_path.exists():
        return out
    try:
        data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("[main] 读取 %s 失败，使用默认。err=%s", cfg_path, e)
        return out
    for k, v in data.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = {**out[k], **v}
        else:
            out[k] = v
    return out


def _resolve(p: str) -> Path:
    path = Path(p)
    return path if path.is_absolute() else ROOT / path


class App:
    """把各组件按配置装配好；main/测试共用"""

    def __init__(self, cfg: dict):
        self.cfg = cfg
        paths = cfg["paths"]
        self.settings_store = SettingsStore(_resolve(paths["settings"]))
        self.comment_store = CommentStore(_resolve(paths["comments"]))
        self.token_store = TokenStore(_resolve(paths["token"]))
        self.classifier = SpamClassifier.from_file(_resolve(paths["keywords"]))
        self.oauth = OAuthManager(self.settings_store, self.token_store, cfg["oauth"]["redirect_uri"])
        self.actuator = ModerationActuator(
            self.oauth, ModerationPolicy.parse(cfg["moderation"].get("status"))
        )
        self.pipeline = IngestionPipeline(
            self.settings_store, self.comment_store, self.classifier, self.actuator
        )
        self.scheduler = Scheduler(self.pipeline)
        self.web = create_app(
            self.settings_store, self.comment_store, self.pipeline, self.scheduler, self.oauth, cfg
        )


async def run_once(cfg: dict) -> int:
    app = App(cfg)
    try:
        report = await app.pipeline.run()
    finally:
        await youtube.close_client()
    return 1 if report.error else 0


async def serve(cfg: dict) -> int:
    app = App(cfg)
    settings = await app.settings_store.load()
    if settings.schedule:
        app.scheduler.start(settings.schedule)

    server = uvicorn.Server(uvicorn.Config(
        app.web,
        host=cfg["server"]["host"],
        port=int(cfg["server"]["port"]),
        log_level=str(cfg.get("log_level", "info")).lower(),
    ))

    # 启动时先拉一次
    startup = asyncio.create_task(app.pipeline.run())
    try:
        await server.serve()
    finally:
        app.scheduler.stop()
        startup.cancel()
        await asyncio.gather(startup, return_exceptions=True)
        # shield 外层取消不到内部的 run；先停掉它再关 client
        await app.pipeline.cancel()
        await youtube.close_client()
        logger.info("[main] finished")

    if not server.started:
        logger.error("[main] HTTP 监听失败 %s:%s", cfg["server"]["host"], cfg["server"]["port"])
        return 1
    return 0


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="YouTube comment spam guard")
    parser.add_argument("--config", type=Path, default=None, help="配置文件（默认 ops/config.yml）")
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--once", action="store_true", help="只跑一次 pipeline 然后退出")
    args = parser.parse_args(argv)

    cfg = load_cfg(args.config)
    set_log_level(cfg.get("log_level", "INFO"))
    if args.port:
        cfg["server"]["port"] = args.port

    if args.once:
        return asyncio.run(run_once(cfg))
    return asyncio.run(serve(cfg))


if __name__ == "__main__":
    sys.exit(main())
