"""Recover JSON payloads from free-form model text.

Models wrap JSON in fences, forget the fences, add comments and trailing
commas, use single quotes, or get cut off mid-value when they hit their
output limit. Each of those is handled by one small stage function that
returns the parsed value or None; ``first_success`` runs them in order and
keeps a record of every stage that failed and why.

Order:
1. candidates: ```json fence, any fence starting with "{", outermost braces
2. clean (BOM, comments, trailing commas, control chars, raw newlines)
3. strict json.loads, then a relaxed pass (bare keys, single quotes)
4. bracket repair for truncated output, then json_repair as a last resort
5. heuristic plain-text extraction (function lists only)

Nothing here raises on bad input. Callers get a ParseOutcome whose value is
None when every stage failed.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from json_repair import repair_json

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_REPAIR_CUTS = 64


@dataclass
class StageAttempt:
    """One failed stage."""

    stage: str
    reason: str

    def to_dict(self) -> dict:
        return {"stage": self.stage, "reason": self.reason}


@dataclass
class ParseOutcome(Generic[T]):
    """Result of a parse cascade: the value and the stage that produced it,
    or None plus the list of stages that were tried."""

    value: T | None = None
    stage: str | None = None
    attempts: list[StageAttempt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.value is not None

    def diagnostics(self) -> list[dict]:
        return [a.to_dict() for a in self.attempts]


def first_success(
    stages: Iterable[tuple[str, Callable[[], T | None]]],
    attempts: list[StageAttempt],
) -> tuple[str, T] | None:
    """Run stages in order, return (name, value) of the first that yields a value.

    Failures are appended to ``attempts``. A stage that raises is recorded
    as failed, never propagated.
    """
    for name, stage in stages:
        try:
            value = stage()
        except Exception as exc:  # stage bugs must not escape the parser
            attempts.append(StageAttempt(name, f"{type(exc).__name__}: {exc}"))
            continue
        if value is None:
            attempts.append(StageAttempt(name, "no result"))
            continue
        return name, value
    return None


# =============================================================================
# Candidate extraction
# =============================================================================

_JSON_FENCE = re.compile(r"```[ \t]*json[ \t]*\n?(.*?)(?:```|$)", re.DOTALL | re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[^\n`]*\n?(.*?)(?:```|$)", re.DOTALL)


def extract_json_fence(text: str) -> str | None:
    """Content of the first fence labelled json."""
    match = _JSON_FENCE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def extract_brace_fence(text: str) -> str | None:
    """Content of the first fence (any label) whose body starts with ``{``."""
    for match in _ANY_FENCE.finditer(text):
        body = match.group(1).strip()
        if body.startswith("{"):
            return body
    return None


def extract_outermost_braces(text: str) -> str | None:
    """Outermost balanced ``{...}`` (or ``[...]``) by depth scanning.

    When the text is truncated before the closing bracket, everything from
    the opening bracket to the end is returned so the repair stage can
    close it.
    """
    start = next((i for i, ch in enumerate(text) if ch in "{["), None)
    if start is None:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:].strip()


# =============================================================================
# Cleaning
# =============================================================================

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def clean_json_text(candidate: str) -> str:
    """Strip BOM, comments, trailing commas and control characters.

    Raw newlines and tabs inside string literals are escaped so a strict
    parser accepts them.
    """
    text = candidate.lstrip("\ufeff").strip()
    out: list[str] = []
    in_string = False
    escaped = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
                out.append(ch)
            elif ch == "\\":
                escaped = True
                out.append(ch)
            elif ch == '"':
                in_string = False
                out.append(ch)
            elif ch == "\n":
                out.append("\\n")
            elif ch == "\r":
                pass
            elif ch == "\t":
                out.append("\\t")
            else:
                out.append(ch)
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = len(text) if newline == -1 else newline
            continue
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = len(text) if end == -1 else end + 2
            continue
        else:
            out.append(ch)
        i += 1

    cleaned = _CONTROL_CHARS.sub("", "".join(out))
    return _TRAILING_COMMA.sub(r"\1", cleaned)


# =============================================================================
# Decoding
# =============================================================================

def _structured(value: Any) -> Any | None:
    """Only objects and arrays count as a successful parse."""
    if isinstance(value, (dict, list)) and value:
        return value
    return None


def strict_parse(text: str) -> Any | None:
    try:
        return _structured(json.loads(text))
    except (json.JSONDecodeError, ValueError):
        return None


_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_\u4e00-\u9fff][\w\u4e00-\u9fff-]*)(\s*:)")
_SINGLE_QUOTED = re.compile(r"'((?:[^'\\\n]|\\.)*)'")
_PY_LITERALS = {"True": "true", "False": "false", "None": "null"}


def relaxed_parse(text: str) -> Any | None:
    """Quote bare keys, turn single-quoted strings into JSON strings."""
    relaxed = _BARE_KEY.sub(r'\1"\2"\3', text)
    relaxed = _SINGLE_QUOTED.sub(lambda m: json.dumps(m.group(1)), relaxed)
    relaxed = re.sub(r"\b(True|False|None)\b", lambda m: _PY_LITERALS[m.group(1)], relaxed)
    return strict_parse(relaxed)


_CLOSERS = {"{": "}", "[": "]"}


def _scan_brackets(text: str) -> tuple[list[str], bool, list[tuple[int, list[str]]]] | None:
    """Open-bracket stack, whether we end inside a string, and safe cut points.

    A cut point is an index where the text can be truncated to drop a
    partial trailing element: each top-level comma inside a container and
    each position just after a container closes. Returns None when a closer
    does not match its opener.
    """
    stack: list[str] = []
    cuts: list[tuple[int, list[str]]] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if not stack or _CLOSERS[stack[-1]] != ch:
                return None
            stack.pop()
            cuts.append((i + 1, list(stack)))
        elif ch == "," and stack:
            cuts.append((i, list(stack)))
    return stack, in_string, cuts


def _close(text: str, stack: list[str]) -> str:
    text = re.sub(r"[\s,:]+$", "", text)
    return text + "".join(_CLOSERS[opener] for opener in reversed(stack))


def repair_truncated_json(text: str) -> Any | None:
    """Close a JSON document that was cut off mid-value.

    First tries to close the text as-is (supplying a missing closing quote);
    then walks back through safe cut points, dropping the incomplete tail
    element, until the closed text parses.
    """
    text = text.rstrip()
    scanned = _scan_brackets(text)
    if scanned is None:
        return None
    stack, in_string, cuts = scanned
    if not stack and not in_string:
        return None

    attempts = [(text + ('"' if in_string else ""), stack)]
    attempts.extend((text[:index], snapshot) for index, snapshot in reversed(cuts[-_MAX_REPAIR_CUTS:]))

    for partial, snapshot in attempts:
        if not snapshot:
            candidate = partial
        else:
            candidate = _close(partial, snapshot)
        value = strict_parse(candidate)
        if value is not None:
            return value
    return None


def library_repair(text: str) -> Any | None:
    """Last structured resort: json_repair's tolerant parser."""
    try:
        value = repair_json(text, return_objects=True)
    except Exception as exc:
        logger.debug(f"json_repair failed: {exc}")
        return None
    return _structured(value)


# =============================================================================
# Public entry points
# =============================================================================

def _candidates(text: str, attempts: list[StageAttempt]) -> list[tuple[str, str]]:
    found: list[tuple[str, str]] = []
    for name, extractor in (
        ("json_fence", extract_json_fence),
        ("brace_fence", extract_brace_fence),
        ("outermost_braces", extract_outermost_braces),
    ):
        candidate = extractor(text)
        if candidate is None:
            attempts.append(StageAttempt(name, "no candidate"))
        elif all(candidate != existing for _, existing in found):
            found.append((name, candidate))
    return found


def parse_json(text: str | None) -> ParseOutcome[Any]:
    """Parse the first JSON object or array found in ``text``.

    Returns:
        ParseOutcome whose ``stage`` reads like ``"json_fence/strict"``.
    """
    outcome: ParseOutcome[Any] = ParseOutcome()
    if not text or not text.strip():
        outcome.attempts.append(StageAttempt("input", "empty text"))
        return outcome

    for source, candidate in _candidates(text, outcome.attempts):
        cleaned = clean_json_text(candidate)
        result = first_success(
            [
                (f"{source}/strict", lambda: strict_parse(cleaned)),
                (f"{source}/relaxed", lambda: relaxed_parse(cleaned)),
                (f"{source}/bracket_repair", lambda: repair_truncated_json(cleaned)),
                (f"{source}/json_repair", lambda: library_repair(cleaned)),
            ],
            outcome.attempts,
        )
        if result is not None:
            outcome.stage, outcome.value = result
            if not outcome.stage.endswith("/strict"):
                logger.debug(f"JSON recovered via {outcome.stage}")
            return outcome

    return outcome


# =============================================================================
# Heuristic function-list extraction
# =============================================================================

ACTION_VERBS: tuple[str, ...] = (
    "新增", "创建", "添加", "删除", "修改", "编辑", "查询", "查看", "导出", "导入",
    "统计", "汇总", "同步", "上报", "推送", "审核", "审批", "配置", "管理", "生成",
    "计算", "分析", "监控", "展示", "接收", "下发", "采集", "上传", "下载", "登录",
    "注册", "设置", "发布", "提交", "预警", "告警", "评估", "检索", "维护", "调度",
)

_KEY_VALUE = re.compile(r"^\s*[#*\-\s]*([^:：]{1,12})\s*[:：]\s*(.+?)\s*$")
_LIST_ITEM = re.compile(r"^\s*(?:[-*•+]|\d+[.、)）]|[（(]\d+[)）])\s*(.+?)\s*$")
_HEADING = re.compile(r"^\s*#{1,6}\s*(.+?)\s*$")
_PROCESS_HEADER = re.compile(r"^\s*#*\s*功能过程\s*[:：]?\s*(.*?)\s*$")
_TIMER_MARKERS = re.compile(r"定时|周期|自动|每天|每日|每小时|每周|每月|每\d+分钟")
_INTERFACE_MARKERS = re.compile(r"接口|回调|Webhook|消息队列|被调用", re.IGNORECASE)
_INTERVAL = re.compile(r"(每?\d+\s*(?:分钟|小时|天|秒)|每天|每日|每小时|每周|每月)")

_PROJECT_KEYS = ("项目名称", "系统名称", "项目名", "project name", "project")
_DESCRIPTION_KEYS = ("项目描述", "项目简介", "系统描述", "description")
_MODULE_KEYS = ("模块", "所属模块", "模块名称", "module")


def _clean_function_name(raw: str) -> tuple[str, str]:
    """Split "name：description" and trim decoration."""
    raw = raw.strip().strip("*`").strip()
    parts = re.split(r"[:：]", raw, maxsplit=1)
    name = parts[0]
    description = parts[1] if len(parts) > 1 else ""
    name = re.sub(r"[。；;，,.]+$", "", name).strip().strip("*`").strip()
    return name, description.strip()


def _trigger_for(text: str) -> str:
    if _TIMER_MARKERS.search(text):
        return "时钟触发"
    if _INTERFACE_MARKERS.search(text):
        return "接口调用触发"
    return "用户触发"


def heuristic_function_list(text: str) -> dict | None:
    """Build a minimal function-list payload from plain text.

    Picks up ``key: value`` lines for project metadata, headings and
    "模块：" lines as module names, list items containing an action verb as
    functions, and "功能过程" headers (the name follows on the same or next
    line). Scheduled items are also listed as timed tasks.
    """
    project_name = ""
    project_description = ""
    modules: dict[str, list[dict]] = {}
    current_module = "未分类"
    timed_tasks: list[dict] = []
    seen: set[str] = set()
    expect_process_name = False

    def add_function(raw: str) -> None:
        name, description = _clean_function_name(raw)
        if not (2 <= len(name) <= 40) or name.lower() in seen:
            return
        seen.add(name.lower())
        trigger = _trigger_for(raw)
        modules.setdefault(current_module, []).append(
            {"name": name, "triggerType": trigger, "description": description}
        )
        if trigger == "时钟触发":
            interval = _INTERVAL.search(raw)
            timed_tasks.append({
                "name": name,
                "interval": interval.group(1) if interval else "",
                "description": description,
            })

    for line in text.splitlines():
        if not line.strip():
            continue

        if expect_process_name:
            expect_process_name = False
            if not _HEADING.match(line):
                add_function(line)
                continue

        header = _PROCESS_HEADER.match(line)
        if header:
            if header.group(1):
                add_function(header.group(1))
            else:
                expect_process_name = True
            continue

        kv = _KEY_VALUE.match(line)
        if kv:
            key = kv.group(1).strip().lower()
            value = kv.group(2).strip()
            if any(key == k for k in _PROJECT_KEYS) and not project_name:
                project_name = value
                continue
            if any(key == k for k in _DESCRIPTION_KEYS) and not project_description:
                project_description = value
                continue
            if any(key == k for k in _MODULE_KEYS):
                current_module = value
                continue

        heading = _HEADING.match(line)
        if heading:
            title = heading.group(1)
            if "模块" in title or "子系统" in title:
                current_module = title
            elif any(verb in title for verb in ACTION_VERBS):
                add_function(title)
            continue

        item = _LIST_ITEM.match(line)
        if item and any(verb in item.group(1) for verb in ACTION_VERBS):
            add_function(item.group(1))

    if not modules:
        return None

    return {
        "projectName": project_name,
        "projectDescription": project_description,
        "modules": [
            {"moduleName": module, "functions": functions}
            for module, functions in modules.items()
        ],
        "timedTasks": timed_tasks,
        "suggestions": [],
    }


def parse_function_list_payload(text: str | None) -> ParseOutcome[dict]:
    """JSON cascade, then heuristic extraction.

    A bare JSON array is read as the list of functions.
    """
    outcome = parse_json(text)
    if outcome.ok:
        if isinstance(outcome.value, list):
            outcome.value = {"functions": outcome.value}
        return outcome

    result = first_success(
        [("heuristic_text", lambda: heuristic_function_list(text or ""))],
        outcome.attempts,
    )
    if result is not None:
        outcome.stage, outcome.value = result
        logger.info("Function list recovered from plain text")
    return outcome
