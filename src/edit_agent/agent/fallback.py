"""Deterministic keyword classifier used when no remote model is consulted."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from edit_agent.obs.tracing import Timer
from edit_agent.retrieval.retriever import looks_like_global_review
from edit_agent.types import Intent, IntentResult, SummaryEntry

_WORD = re.compile(r"[A-Za-z_$][\w$.]*")
_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")


@dataclass(frozen=True, slots=True)
class _KeywordTable:
    zh: tuple[str, ...]
    en: tuple[str, ...]
    weight: float


_INTENT_KEYWORDS: dict[Intent, _KeywordTable] = {
    Intent.UI_MODIFICATION: _KeywordTable(
        zh=("颜色", "样式", "布局", "字体", "边距", "间距", "动画", "主题", "暗色", "亮色",
            "图标", "按钮", "卡片", "边框", "阴影", "圆角", "居中", "响应式", "移动端",
            "显示", "隐藏", "宽度", "高度", "背景", "渐变"),
        en=("color", "colour", "style", "layout", "css", "font", "margin", "padding",
            "animation", "theme", "dark", "light", "icon", "button", "card", "border",
            "shadow", "rounded", "center", "responsive", "mobile", "display", "hidden",
            "width", "height", "background", "gradient", "tailwind", "classname"),
        weight=1.0,
    ),
    Intent.LOGIC_FIX: _KeywordTable(
        zh=("修复", "错误", "问题", "不工作", "失败", "崩溃", "报错", "异常", "不对",
            "逻辑", "判断", "条件", "循环", "函数", "方法"),
        en=("fix", "bug", "error", "issue", "broken", "fail", "crash", "exception",
            "wrong", "logic", "condition", "loop", "function", "method", "debug",
            "undefined", "null", "nan", "typeerror", "referenceerror"),
        weight=1.2,
    ),
    Intent.CONFIG_HELP: _KeywordTable(
        zh=("配置", "环境变量", "安装", "启动", "部署", "构建", "编译", "打包", "依赖",
            "版本", "设置"),
        en=("config", "configuration", "env", "environment", "install", "deploy",
            "compile", "bundle", "dependency", "version", "npm", "yarn", "pnpm",
            "setup", "package.json", "tsconfig", ".env", "vercel", "docker"),
        weight=1.0,
    ),
    Intent.NEW_FEATURE: _KeywordTable(
        zh=("添加", "新增", "创建", "实现", "开发", "新功能", "新页面", "新组件", "集成", "接入"),
        en=("add", "new", "create", "implement", "develop", "feature", "page",
            "component", "integrate", "make"),
        weight=0.8,
    ),
    Intent.QA_EXPLANATION: _KeywordTable(
        zh=("什么", "为什么", "如何", "怎么", "解释", "说明", "是什么", "作用", "原理",
            "区别", "理解"),
        en=("what", "why", "how", "explain", "describe", "purpose", "difference",
            "understand", "mean", "does"),
        weight=0.6,
    ),
    Intent.PERFORMANCE: _KeywordTable(
        zh=("性能", "优化", "慢", "卡顿", "加速", "缓存", "懒加载", "内存", "渲染", "重渲染"),
        en=("performance", "optimize", "optimise", "slow", "fast", "speed", "cache",
            "lazy", "memory", "render", "rerender", "memo", "usememo", "usecallback"),
        weight=1.1,
    ),
    Intent.REFACTOR: _KeywordTable(
        zh=("重构", "优化代码", "整理", "拆分", "合并", "提取", "抽象", "封装", "解耦", "清理"),
        en=("refactor", "clean", "split", "merge", "extract", "abstract", "encapsulate",
            "decouple", "organize", "restructure", "simplify"),
        weight=0.9,
    ),
    Intent.DATA_OPERATION: _KeywordTable(
        zh=("数据库", "查询", "接口", "请求", "数据", "表", "字段", "增删改查", "存储", "获取"),
        en=("database", "query", "api", "endpoint", "request", "data", "table",
            "field", "crud", "storage", "fetch", "post", "sql", "mutation"),
        weight=1.0,
    ),
    Intent.BACKEND_SETUP: _KeywordTable(
        zh=("后端", "服务器", "登录", "注册", "表单提交", "收集", "云端", "同步"),
        en=("backend", "server", "supabase", "login", "signup", "auth", "submit",
            "mailbox", "cms", "sync", "persist"),
        weight=1.1,
    ),
}

_TARGET_STOPWORDS = {
    "the", "and", "for", "with", "this", "that", "from", "into", "make", "please",
    "add", "fix", "change", "update", "remove", "all", "app",
}


class HeuristicIntentClassifier:
    """Keyword classifier with the same result contract as the remote one.

    Each intent scores `weight * hits * log2(hits + 1)`; confidence is the
    winning score's share of the total. A request that reads like a review
    of the whole document is classified as GLOBAL_REVIEW outright. Targets
    are request words that name a known chunk id (case-insensitive).
    """

    def classify(
        self,
        user_text: str,
        *,
        architecture_summary: list[SummaryEntry] | None = None,
    ) -> IntentResult:
        with Timer() as timer:
            intent, confidence, matched = self._score(user_text)
            targets = _extract_targets(user_text, architecture_summary or [])

        if matched:
            reasoning = f"Matched keywords {', '.join(matched)} -> {intent.value}."
        else:
            reasoning = "No intent keywords matched."
        if targets:
            reasoning += f" Named units: {', '.join(targets)}."

        return IntentResult(
            intent=intent,
            targets=tuple(targets),
            reasoning=reasoning,
            confidence=confidence,
            source="heuristic",
            latency_ms=timer.elapsed_ms,
        )

    def _score(self, user_text: str) -> tuple[Intent, float, list[str]]:
        if looks_like_global_review(user_text):
            return Intent.GLOBAL_REVIEW, 1.0, ["review + all"]

        lowered = user_text.lower()
        words = {word.lower().strip(".") for word in _WORD.findall(user_text)}
        scores: dict[Intent, float] = {}
        hits_by_intent: dict[Intent, list[str]] = {}

        for intent, table in _INTENT_KEYWORDS.items():
            hits = [kw for kw in table.zh if kw in user_text]
            for keyword in table.en:
                if _is_plain_word(keyword):
                    if keyword in words or f"{keyword}s" in words:
                        hits.append(keyword)
                elif keyword in lowered:
                    hits.append(keyword)
            if hits:
                scores[intent] = table.weight * len(hits) * math.log2(len(hits) + 1)
                hits_by_intent[intent] = hits

        if not scores:
            return Intent.UNKNOWN, 0.0, []

        best = max(scores, key=lambda intent: scores[intent])
        total = sum(scores.values())
        return best, scores[best] / total, hits_by_intent[best]


def _is_plain_word(keyword: str) -> bool:
    return keyword.isalnum()


def _extract_targets(user_text: str, summary: list[SummaryEntry]) -> list[str]:
    if not summary:
        return []
    known = [entry.id for entry in summary]
    targets: list[str] = []
    for word in _IDENTIFIER.findall(user_text):
        if len(word) < 3 or word.lower() in _TARGET_STOPWORDS:
            continue
        lowered = word.lower()
        for chunk_id in known:
            if chunk_id.lower() == lowered and chunk_id not in targets:
                targets.append(chunk_id)
    return targets

