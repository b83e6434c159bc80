"""Centralized configuration for the COSMIC extraction pipeline.

All magic numbers, thresholds, and provider settings are documented here.
Each constant includes:
- What it controls
- Where it is used
"""

import os
from typing import Final


# =============================================================================
# Provider Configuration
# =============================================================================
#
# To pick a provider, set the COSMIC_PROVIDER environment variable:
#   - "auto" (default): first provider with a key, in PROVIDER_PRIORITY order
#   - "gemini", "zhipu", "openrouter", "groq", "openai"
#
# No credentials are embedded here. A provider without its key is simply
# unavailable; asking for it raises ConfigurationError.
#
# =============================================================================

COSMIC_PROVIDER: Final[str] = os.environ.get("COSMIC_PROVIDER", "auto").lower()
"""Provider selected by ClientRegistry.from_env(). Set via COSMIC_PROVIDER."""

PROVIDER_PRIORITY: Final[tuple[str, ...]] = ("gemini", "zhipu", "openrouter", "groq", "openai")
"""Order in which "auto" looks for a configured provider."""

API_KEY_ENV_VARS: Final[dict[str, tuple[str, ...]]] = {
    "gemini": ("GEMINI_API_KEY",),
    "zhipu": ("ZHIPU_API_KEY", "OPENAI_API_KEY"),
    "openrouter": ("OPENROUTER_API_KEY",),
    "groq": ("GROQ_API_KEY",),
    "openai": ("OPENAI_API_KEY",),
}
"""Environment variables holding each provider's key, first match wins."""

MODEL_ENV_VARS: Final[dict[str, tuple[str, str]]] = {
    "gemini": ("GEMINI_MODEL", "gemini-2.0-flash"),
    "zhipu": ("ZHIPU_MODEL", "glm-4-flash"),
    "openrouter": ("OPENROUTER_MODEL", "google/gemini-2.0-flash-exp:free"),
    "groq": ("GROQ_MODEL", "llama-3.3-70b-versatile"),
    "openai": ("OPENAI_MODEL", "gpt-4o-mini"),
}
"""(env var, default model) per provider."""

BASE_URL_ENV_VARS: Final[dict[str, tuple[str, str | None]]] = {
    "zhipu": ("ZHIPU_BASE_URL", "https://open.bigmodel.cn/api/paas/v4"),
    "openai": ("OPENAI_BASE_URL", None),
}
"""(env var, default base URL) for providers that talk to an OpenAI-compatible endpoint."""

FALLBACK_MODELS_ENV_VAR: Final[str] = "OPENROUTER_FALLBACK_MODELS"
"""Comma-separated OpenRouter fallback models, tried in order after the primary."""

DEFAULT_OPENROUTER_FALLBACKS: Final[tuple[str, ...]] = (
    "meta-llama/llama-3.2-3b-instruct:free",
    "mistralai/mistral-7b-instruct:free",
)


# Chunking

class ChunkingConfig:
    """Settings for splitting oversized documents.

    Used by: core/chunker.py, orchestrator.extract_document()
    """

    MAX_CHUNK_CHARS: Final[int] = 8000
    """Documents longer than this are split. Keeps each round prompt well inside
    the context window of the free-tier models the pipeline usually runs on."""

    OVERLAP_PREVIEW_CHARS: Final[int] = 500
    """Characters of the next chunk shown to the model as read-only context."""

    MIN_HEADING_MATCHES: Final[int] = 3
    """A heading pattern is used only when it matches at least this many lines."""


# Round loop

class RoundConfig:
    """Limits for the multi-round splitting loop.

    Used by: phases/splitting_phase.py, prompts/splitting_prompt.py
    """

    QUANTITY_MAX_ROUNDS: Final[int] = 10
    QUALITY_MAX_ROUNDS: Final[int] = 12

    QUANTITY_STALL_LIMIT: Final[int] = 5
    QUALITY_STALL_LIMIT: Final[int] = 3
    """Consecutive zero-progress rounds tolerated before stopping."""

    HARD_STALL_LIMIT: Final[int] = 5
    """Unconditional stop, whatever the mode."""

    INTER_ROUND_DELAY_SECONDS: Final[float] = 1.5
    """Pause between rounds to stay under upstream rate limits."""

    SHORT_REPLY_CHARS: Final[int] = 100
    """Quantity mode treats a reply shorter than this (after round 1) as done."""

    MAX_LISTED_PROCESS_NAMES: Final[int] = 30
    MAX_LISTED_SUBPROCESS_DESCRIPTIONS: Final[int] = 50

    DOCUMENT_PROMPT_CHARS: Final[int] = 30000
    """Document text beyond this is truncated in round prompts."""

    DEFAULT_TARGET: Final[int] = 30

    QUANTITY_COMPLETION_MARKERS: Final[tuple[str, ...]] = (
        "[ALL_DONE]", "已完成", "全部拆分", "无需补充",
    )
    QUALITY_COMPLETION_MARKERS: Final[tuple[str, ...]] = (
        "[ALL_DONE]", "已完成所有", "全部拆分完成", "无需补充",
    )


# Batch splitting

class BatchConfig:
    """Settings for splitting a confirmed function list.

    Used by: phases/batch_split_phase.py, prompts/batch_prompt.py
    """

    BATCH_SIZE: Final[int] = 10
    ROWS_PER_FUNCTION: Final[int] = 4
    DOCUMENT_EXCERPT_CHARS: Final[int] = 6000
    KEYWORD_MATCH_RATIO: Final[float] = 0.5
    """Share of a function's keyword tokens that must appear in some output
    process name for the function to count as covered."""


# Retry

class RetryConfig:
    """Per-call retry and failover budget.

    Used by: core/retry_policy.py
    """

    MAX_ATTEMPTS_PER_MODEL: Final[int] = 2
    BACKOFF_SECONDS: Final[float] = 3.0
    SHRINK_RATIO: Final[float] = 0.7
    """Prompt is cut to this fraction of its length after a token-limit error."""
    TRUNCATION_MARKER: Final[str] = "\n...(文档已截断)"


# LLM call settings

class LLMConfig:
    """Sampling and transport settings.

    Used by: core/llm_client.py, agents/
    """

    TEMPERATURE: Final[float] = 0.7
    UNDERSTANDING_TEMPERATURE: Final[float] = 0.3
    EXTRACTION_TEMPERATURE: Final[float] = 0.3
    MAX_TOKENS: Final[int] = 8000
    REQUEST_TIMEOUT_SECONDS: Final[float] = 180.0
    """Exceeding this is classified as a network error."""

    MAX_CONCURRENT_CHUNKS: Final[int] = 3
    """Chunk runs allowed in flight at once in extract_document()."""


# Attribute normalization

class AttributeConfig:
    """Rules for cleaning the data-attribute column.

    Used by: core/normalizer.py, core/table_parser.py
    """

    MIN_ATTRIBUTES: Final[int] = 3
    MAX_ATTRIBUTES: Final[int] = 8

    SEPARATORS: Final[str] = r"[、,，;；|/]"

    VERB_PREFIXES: Final[tuple[str, ...]] = (
        "删除", "查询", "新增", "修改", "编辑", "读取", "返回", "接收", "保存",
        "记录", "获取", "导出", "导入", "更新", "写入", "创建", "提交", "统计",
    )

    BACKFILL: Final[dict[str, tuple[str, ...]]] = {
        "E": ("请求ID", "操作人标识", "请求时间", "查询条件", "操作权限"),
        "R": ("数据ID", "数据名称", "数据版本", "读取时间", "来源标识"),
        "W": ("操作类型", "操作时间", "操作人", "日志ID", "变更内容"),
        "X": ("响应状态", "处理结果", "处理耗时", "返回记录数", "成功标识"),
    }
    """Generic attributes appended, in order, until MIN_ATTRIBUTES is reached."""

    GENERIC_BACKFILL: Final[tuple[str, ...]] = ("记录编号", "业务描述", "处理时间")

    FIELD_TRANSLATIONS: Final[dict[str, str]] = {
        "cell_id": "小区标识",
        "task_id": "任务编号",
        "user_id": "用户编号",
        "create_time": "创建时间",
        "update_time": "更新时间",
        "start_time": "开始时间",
        "end_time": "结束时间",
        "status": "状态",
        "name": "名称",
        "type": "类型",
    }


# Name quality

class NameQualityConfig:
    """Advisory checks on functional-process names.

    Used by: core/normalizer.py
    """

    MIN_NAME_CHARS: Final[int] = 4
    GENERIC_TAIL_CHARS: Final[int] = 4
    """A bare verb followed by at most this many characters reads as generic."""

    GENERIC_VERBS: Final[tuple[str, ...]] = (
        "查询", "新增", "删除", "修改", "编辑", "导出", "导入", "管理",
        "处理", "查看", "统计", "配置", "获取", "更新",
    )
    GENERIC_OBJECTS: Final[tuple[str, ...]] = ("数据", "信息", "记录", "结果", "内容", "列表")

    NEAR_DUPLICATE_SCORE: Final[float] = 90.0
    """rapidfuzz ratio at or above which two distinct names are flagged."""

    LEADING_VERBS: Final[tuple[str, ...]] = (
        "查询", "创建", "删除", "修改", "编辑", "导出", "导入", "统计", "配置",
        "处理", "执行", "新增", "更新", "生成", "返回", "获取", "同步", "汇总", "查看",
    )
    """Stripped from the front of data-group names and process keywords."""


# Trigger inference

class TriggerConfig:
    """Canonical functional-user / trigger strings and inference keywords.

    Used by: core/normalizer.py
    """

    USER: Final[tuple[str, str]] = ("发起者：用户 接收者：用户", "用户触发")
    TIMER: Final[tuple[str, str]] = ("发起者：定时触发器 接收者：网优平台", "时钟触发")
    INTERFACE: Final[tuple[str, str]] = ("发起者：其他平台 接收者：网优平台", "接口调用触发")

    TIMER_PATTERN: Final[str] = r"定时|周期|每天|每小时|自动汇总|自动同步|定期|批量推送"
    INTERFACE_PATTERN: Final[str] = r"接收.*推送|回调|Webhook|消息队列|事件监听"
