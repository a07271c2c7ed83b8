# -*- coding: utf-8 -*-
"""
comment_guard/classifier.py
垃圾评论判定：按顺序匹配关键词正则（大小写不敏感），命中任意一条即为 spam。
规则来自 ops/keywords.yml 的 spam_patterns；文件缺失时使用内置默认列表。
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

import yaml

from .utils import get_logger

logger = get_logger(__name__)

DEFAULT_SPAM_PATTERNS = [r"\bMAX ?33\b"]


class KeywordPattern:
    """单条规则：matches(text) -> bool。以后要加权重/打分，只需要换实现"""

    def __init__(self, pattern: str):
        self.source = pattern
        self._regex = re.compile(pattern, re.IGNORECASE)

    def matches(self, text: str) -> bool:
        return bool(self._regex.search(text or ""))

    def __repr__(self) -> str:
        return f"KeywordPattern({self.source!r})"


class SpamClassifier:
    def __init__(self, patterns: Optional[Iterable[Union[str, KeywordPattern]]] = None):
        self.patterns: List[KeywordPattern] = []
        for p in (DEFAULT_SPAM_PATTERNS if patterns is None else patterns):
            if isinstance(p, KeywordPattern):
                self.patterns.append(p)
                continue
            try:
                self.patterns.append(KeywordPattern(p))
            except re.error as e:
                logger.warning("[classifier] 跳过无效正则 %r: %s", p, e)

    def match(self, text: str) -> Optional[KeywordPattern]:
        """返回第一条命中的规则（短路）；没命中返回 None"""
        for pattern in self.patterns:
            if pattern.matches(text):
                return pattern
        return None

    def is_spam(self, text: str) -> bool:
        return self.match(text) is not None

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SpamClassifier":
        return cls(load_patterns(path))


def load_patterns(path: Union[str, Path]) -> List[str]:
    """
    读取 keywords.yml:
        spam_patterns:
          - '\\bMAX ?33\\b'
    读取失败或列表为空时退回默认规则。
    """
    p = Path(path)
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.info("[classifier] 未找到 %s，使用默认规则", p)
        return list(DEFAULT_SPAM_PATTERNS)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("[classifier] 读取 %s 失败，使用默认规则: %s", p, e)
        return list(DEFAULT_SPAM_PATTERNS)

    raw = data.get("spam_patterns") if isinstance(data, dict) else None
    patterns = [str(x) for x in (raw or []) if isinstance(x, (str, int)) and str(x).strip()]
    if not patterns:
        logger.warning("[classifier] %s 没有 spam_patterns，使用默认规则", p)
        return list(DEFAULT_SPAM_PATTERNS)
    return patterns
