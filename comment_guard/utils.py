# -*- coding: utf-8 -*-
"""
comment_guard/utils.py
通用辅助函数：
- 日志工具（统一格式，stream handler）
- 时间戳 / 时区转换
- JSON 文档原子写入（临时文件 + os.replace）
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Tuple, Union

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_LOG_LEVEL = logging.INFO


def set_log_level(level: Union[str, int]) -> None:
    """调整 comment_guard.* 所有 logger 的级别（main 读取配置后调用）"""
    global _LOG_LEVEL
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    _LOG_LEVEL = level
    logging.getLogger("comment_guard").setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """
    获取 logger。handler 只挂在 comment_guard 根 logger 上一次，
    子 logger 通过传播输出，避免重复打印。
    """
    root = logging.getLogger("comment_guard")
    if not root.handlers:
        root.setLevel(_LOG_LEVEL)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(handler)
        root.propagate = False
    if name == "comment_guard" or name.startswith("comment_guard."):
        return logging.getLogger(name)
    return logging.getLogger(f"comment_guard.{name}")


def now_ms() -> int:
    return int(time.time() * 1000)


def iso_to_ms(value: Optional[str]) -> int:
    """'2024-05-01T12:30:00Z' -> 毫秒时间戳；解析不了就用 now"""
    if not value:
        return now_ms()
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    except ValueError:
        return now_ms()


def day_hour_bucket(ts_ms: int) -> Tuple[str, str]:
    """
    统计桶 (day, hour)：
    day 取 UTC 日期（YYYY-MM-DD），hour 取本地时钟的小时（"0".."23"）。
    """
    seconds = ts_ms / 1000.0
    day = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d")
    hour = str(datetime.fromtimestamp(seconds).hour)
    return day, hour


def ms_to_local_str(ms: int, tz_name: str) -> str:
    import pytz
    try:
        tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        tz = pytz.UTC
    dt = datetime.fromtimestamp(ms / 1000.0, tz=pytz.UTC)
    return dt.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")


# -------------------- JSON 文档读写 --------------------

def read_json(path: Union[str, Path]) -> Optional[Any]:
    """读 JSON；文件不存在或内容损坏都返回 None（调用方自己给默认值）"""
    p = Path(path)
    try:
        with open(p, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        get_logger(__name__).warning("[storage] %s 读取失败，按空文档处理: %s", p, e)
        return None


def write_json_atomic(path: Union[str, Path], data: Any) -> None:
    """
    原子写：同目录临时文件写完后 os.replace，
    读者要么看到旧文件，要么看到新文件，不会读到半截。
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, p)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
