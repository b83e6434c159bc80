"""Cleaning, deduplication and validation of decomposition records.

Models repeat processes they already emitted in earlier rounds, stuff verbs
into attribute lists, leave out R or W rows, and pick names like "查询数据".
This module handles all of it after parsing:

- Deduplicator: merge new rows into the accumulated set, dropping whole
  groups whose process name was seen before (case-insensitive, trimmed).
- normalize_attributes(): split, translate, strip verbs, dedupe, backfill.
- complete_groups(): add missing E/R/W/X rows and order each group E, R, W, X.
- validate_records(): advisory warnings, never blocking.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from rapidfuzz import fuzz, process

from cosmic_extractor.core.config import AttributeConfig, NameQualityConfig, TriggerConfig
from cosmic_extractor.core.errors import RunIssue, validation_warning
from cosmic_extractor.pydantic_models.records import MOVEMENT_ORDER, MovementType, Record

logger = logging.getLogger(__name__)


# =============================================================================
# Text helpers
# =============================================================================

_ANNOTATIONS = re.compile(r"【[^】]*】|\[[^\]]*\]|\(\d+\)|（\d+）")
_WHITESPACE = re.compile(r"\s+")
_SEPARATORS = re.compile(AttributeConfig.SEPARATORS)
_MARKDOWN_EMPHASIS = re.compile(r"\*\*|__|`")


def sanitize_text(text: str | None) -> str:
    """Drop bracketed annotations and emphasis, collapse whitespace."""
    if not text:
        return ""
    text = _ANNOTATIONS.sub("", text)
    text = _MARKDOWN_EMPHASIS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def name_key(name: str) -> str:
    """Comparison key for process names."""
    return name.strip().lower()


def strip_leading_verb(text: str, verbs: Iterable[str] = NameQualityConfig.LEADING_VERBS) -> str:
    for verb in verbs:
        if text.startswith(verb) and len(text) > len(verb):
            return text[len(verb):]
    return text


def process_keyword(process_name: str) -> str:
    """Business object of a process name, used in generated row text."""
    keyword = strip_leading_verb(sanitize_text(process_name))
    return keyword[:8] or process_name[:8]


def normalize_data_group(group: str, process_name: str = "") -> str:
    group = strip_leading_verb(sanitize_text(group))
    if not group and process_name:
        return f"{process_keyword(process_name)}数据"
    return group


# =============================================================================
# Attributes
# =============================================================================

def _strip_attribute_verb(token: str) -> str:
    for verb in AttributeConfig.VERB_PREFIXES:
        if token.startswith(verb):
            return token[len(verb):].strip()
    return token


def normalize_attributes(
    raw: str | Iterable[str] | None,
    movement: MovementType | None = None,
    minimum: int = AttributeConfig.MIN_ATTRIBUTES,
    maximum: int = AttributeConfig.MAX_ATTRIBUTES,
) -> list[str]:
    """Clean one attribute cell into a list of attribute names.

    Steps: split on separators, translate English field names, strip
    leading action verbs, drop empties and duplicates, cap at ``maximum``,
    then backfill from the movement's generic library up to ``minimum``.
    """
    if raw is None:
        tokens: list[str] = []
    elif isinstance(raw, str):
        tokens = _SEPARATORS.split(sanitize_text(raw))
    else:
        tokens = [sanitize_text(t) for t in raw]

    attributes: list[str] = []
    for token in tokens:
        token = token.strip()
        token = AttributeConfig.FIELD_TRANSLATIONS.get(token.lower(), token)
        token = _strip_attribute_verb(token)
        if token and token not in attributes:
            attributes.append(token)

    attributes = attributes[:maximum]

    library = AttributeConfig.BACKFILL.get(movement.value, ()) if movement else ()
    for filler in (*library, *AttributeConfig.GENERIC_BACKFILL):
        if len(attributes) >= minimum:
            break
        if filler not in attributes:
            attributes.append(filler)
    return attributes


def looks_like_attribute_list(description: str) -> bool:
    """True when a sub-process description is really a list of fields."""
    return len(re.findall(r"[、,，]", description)) >= 2


_DESCRIPTION_TEMPLATES: dict[MovementType, str] = {
    MovementType.ENTRY: "接收{kw}请求",
    MovementType.READ: "读取{kw}数据",
    MovementType.WRITE: "记录{kw}结果",
    MovementType.EXIT: "返回{kw}响应",
}


def regenerate_description(movement: MovementType, process_name: str) -> str:
    return _DESCRIPTION_TEMPLATES[movement].format(kw=process_keyword(process_name))


# =============================================================================
# Functional user / trigger
# =============================================================================

_TIMER = re.compile(TriggerConfig.TIMER_PATTERN)
_INTERFACE = re.compile(TriggerConfig.INTERFACE_PATTERN, re.IGNORECASE)
_INTERFACE_WORDS = re.compile(r"接口|事件|队列")


def infer_trigger(process_name: str, user: str = "", trigger: str = "") -> tuple[str, str]:
    """Canonical (functional user, trigger event) for a process.

    Timer and interface keywords win; otherwise the process is user-triggered.
    """
    if _TIMER.search(process_name) or "时钟" in trigger or "定时" in trigger:
        return TriggerConfig.TIMER
    if _INTERFACE.search(process_name) or _INTERFACE_WORDS.search(user) or _INTERFACE_WORDS.search(trigger):
        return TriggerConfig.INTERFACE
    return TriggerConfig.USER


# =============================================================================
# Grouping and dedup
# =============================================================================

def group_records(records: Iterable[Record]) -> list[list[Record]]:
    """Split rows into contiguous functional-process groups.

    A group starts at a row carrying a process name, or at an E row that
    belongs to no process. Rows before the first group form a nameless group.
    """
    groups: list[list[Record]] = []
    for record in records:
        unnamed_entry = record.movement_type == MovementType.ENTRY and not record.group_name
        if record.starts_group or unnamed_entry or not groups:
            groups.append([record])
        else:
            groups[-1].append(record)
    return groups


class Deduplicator:
    """Accumulated records plus the set of process names already seen.

    Usage:
        dedup = Deduplicator(previous_records)
        added = dedup.merge(parse_table(reply))
    """

    def __init__(self, records: Iterable[Record] = ()):
        self.records: list[Record] = []
        self._seen: set[str] = set()
        self._names: list[str] = []
        self.merge(records)

    def merge(self, new_records: Iterable[Record]) -> list[Record]:
        """Merge a batch of rows and return the rows actually added.

        A group whose process name matches a seen name is dropped whole.
        Rows that belong to no named group are dropped.
        """
        added: list[Record] = []
        for group in group_records(new_records):
            name = group[0].functional_process
            if not name:
                logger.debug(f"Dropping {len(group)} rows outside any functional process")
                continue
            key = name_key(name)
            if key in self._seen:
                logger.debug(f"Duplicate process dropped: {name}")
                continue
            self._seen.add(key)
            self._names.append(name.strip())
            added.extend(group)
        self.records.extend(added)
        return added

    def contains(self, name: str) -> bool:
        return name_key(name) in self._seen

    @property
    def process_names(self) -> list[str]:
        """Unique process names in first-seen order."""
        return list(self._names)

    @property
    def unique_count(self) -> int:
        return len(self._names)

    @property
    def sub_process_descriptions(self) -> list[str]:
        """Unique sub-process descriptions in first-seen order."""
        seen: dict[str, None] = {}
        for record in self.records:
            if record.sub_process_description:
                seen.setdefault(record.sub_process_description, None)
        return list(seen)


# =============================================================================
# Group completion
# =============================================================================

_FILL_TEMPLATES: dict[MovementType, tuple[str, str, tuple[str, ...]]] = {
    MovementType.ENTRY: ("接收{p}请求参数", "{p}请求", ("请求参数", "操作人", "请求时间")),
    MovementType.READ: ("读取{p}相关数据", "{p}数据表", ("数据ID", "数据内容", "更新时间")),
    MovementType.WRITE: ("记录{p}操作日志", "{p}日志表", ("操作人", "操作时间", "操作内容")),
    MovementType.EXIT: ("返回{p}操作结果", "{p}响应", ("操作状态", "结果消息", "处理时间")),
}


def _filler_row(movement: MovementType, process_name: str) -> Record:
    description, group, attributes = _FILL_TEMPLATES[movement]
    keyword = process_keyword(process_name)
    return Record(
        sub_process_description=description.format(p=keyword),
        movement_type=movement,
        data_group=group.format(p=keyword),
        data_attributes=list(attributes),
        process_context=process_name,
    )


def complete_group(group: list[Record]) -> list[Record]:
    """Return the group with every movement type present, ordered E, R, W, X.

    The first row carries the functional user, trigger and process name;
    the rest leave them empty. Extra rows of one type are kept in order.
    """
    head = group[0]
    name = head.group_name
    if not name:
        return list(group)
    user, trigger = head.functional_user, head.trigger_event
    if not user or not trigger:
        inferred_user, inferred_trigger = infer_trigger(name, user, trigger)
        user = user or inferred_user
        trigger = trigger or inferred_trigger

    by_type: dict[MovementType, list[Record]] = {m: [] for m in MOVEMENT_ORDER}
    for record in group:
        by_type[record.movement_type].append(record)
    for movement in MOVEMENT_ORDER:
        if not by_type[movement]:
            by_type[movement].append(_filler_row(movement, name))

    ordered = [r for movement in MOVEMENT_ORDER for r in by_type[movement]]
    result = []
    for i, record in enumerate(ordered):
        if i == 0:
            update = {"functional_user": user, "trigger_event": trigger, "functional_process": name}
        else:
            update = {"functional_user": "", "trigger_event": "", "functional_process": ""}
        result.append(record.model_copy(update={**update, "process_context": name}))
    return result


def complete_groups(records: Iterable[Record]) -> list[Record]:
    """Apply complete_group() to every named group."""
    completed: list[Record] = []
    for group in group_records(records):
        completed.extend(complete_group(group))
    return completed


# =============================================================================
# Name quality
# =============================================================================

_GENERIC_SUFFIXES = ("管理",)
_CRUD_PREFIX = "增删改查"


def name_quality_issues(name: str) -> list[str]:
    """Reasons a process name reads as too vague. Empty list means fine."""
    name = name.strip()
    reasons = []
    if len(name) < NameQualityConfig.MIN_NAME_CHARS:
        reasons.append("too_short")
    for verb in NameQualityConfig.GENERIC_VERBS:
        if name.startswith(verb):
            tail = name[len(verb):]
            if len(tail) <= NameQualityConfig.GENERIC_TAIL_CHARS:
                for word in NameQualityConfig.GENERIC_OBJECTS:
                    tail = tail.replace(word, "")
                if not tail:
                    reasons.append("generic")
            break
    if name.endswith(_GENERIC_SUFFIXES) or name.startswith(_CRUD_PREFIX):
        reasons.append("umbrella_term")
    return reasons


def expand_generic_name(name: str) -> list[str]:
    """Expand an umbrella name into concrete processes.

    "设备管理" and "增删改查设备" both become 新增设备, 修改设备, 删除设备,
    查询设备. Names that are not umbrella terms come back unchanged.
    """
    name = name.strip()
    obj = ""
    if name.startswith(_CRUD_PREFIX):
        obj = name[len(_CRUD_PREFIX):]
    elif name.endswith("管理"):
        obj = name[: -len("管理")]
    obj = obj.strip()
    if not obj:
        return [name]
    return [f"{verb}{obj}" for verb in ("新增", "修改", "删除", "查询")]


def validate_records(records: list[Record]) -> list[RunIssue]:
    """Advisory checks over a finished record set.

    Flags vague names, near-duplicate names, groups missing a movement
    type, and attribute lists below the floor. Nothing is removed.
    """
    issues: list[RunIssue] = []
    names: list[str] = []

    for group in group_records(records):
        name = group[0].group_name
        if not name:
            continue

        for reason in name_quality_issues(name):
            issues.append(validation_warning(f"Process name '{name}' is {reason.replace('_', ' ')}", name, reason))

        if names:
            match = process.extractOne(
                name, names, scorer=fuzz.ratio, score_cutoff=NameQualityConfig.NEAR_DUPLICATE_SCORE
            )
            if match is not None:
                issues.append(validation_warning(
                    f"Process name '{name}' is nearly identical to '{match[0]}'", name, "near_duplicate"
                ))
        names.append(name)

        present = {r.movement_type for r in group}
        missing = [m.value for m in MOVEMENT_ORDER if m not in present]
        if missing:
            issues.append(validation_warning(
                f"Process '{name}' is missing movement types {''.join(missing)}", name, "missing_movement"
            ))

        for record in group:
            if len(record.data_attributes) < AttributeConfig.MIN_ATTRIBUTES:
                issues.append(validation_warning(
                    f"Process '{name}' {record.movement_type.value} row has "
                    f"{len(record.data_attributes)} attributes",
                    name,
                    "few_attributes",
                ))
    return issues
