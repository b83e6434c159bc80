"""Markdown pipe-table parsing into Records.

Line oriented: any line with at least five pipe-delimited cells that is not
a header or separator row is a candidate. The expected columns are

    |功能用户|触发事件|功能过程|子过程描述|数据移动类型|数据组|数据属性|

but short rows are read by anchoring on the movement-type cell. A row that
names a process (E row, or a row introducing a new name) starts a group and
carries user, trigger and name; other rows inherit the group from the row
before them and leave those cells empty. An E row without a name ends the
current group: it and the rows after it belong to no process.

parse_table() is pure: the same text always yields the same records.
"""

import re

from cosmic_extractor.core.normalizer import (
    infer_trigger,
    looks_like_attribute_list,
    name_key,
    normalize_attributes,
    normalize_data_group,
    regenerate_description,
    sanitize_text,
)
from cosmic_extractor.pydantic_models.records import MovementType, Record, TriggerType

MIN_CELLS = 5

_HEADER_WORDS = ("功能用户", "数据移动类型", "子过程描述", "functional user", "movement type")
_SEPARATOR_CELL = re.compile(r"^:?-{2,}:?$")
_MOVEMENTS = {m.value: m for m in MovementType}


def split_row(line: str) -> list[str] | None:
    """Cells of a pipe-table line, or None when the line is not a row."""
    line = line.strip()
    if line.count("|") < 2:
        return None
    if line.startswith("|"):
        line = line[1:]
    if line.endswith("|"):
        line = line[:-1]
    return [cell.strip() for cell in line.split("|")]


def is_header_row(cells: list[str]) -> bool:
    joined = "".join(cells).lower()
    return any(word in joined for word in _HEADER_WORDS)


def is_separator_row(cells: list[str]) -> bool:
    non_empty = [c for c in cells if c]
    return bool(non_empty) and all(_SEPARATOR_CELL.match(c.replace(" ", "")) for c in non_empty)


def _movement_of(cell: str) -> MovementType | None:
    return _MOVEMENTS.get(sanitize_text(cell).upper())


def find_movement(cells: list[str]) -> tuple[int, MovementType] | None:
    """Column index and value of the movement-type cell.

    Column 5 is checked first; otherwise the first cell that is exactly one
    of E/R/W/X wins.
    """
    if len(cells) > 4:
        movement = _movement_of(cells[4])
        if movement:
            return 4, movement
    for index, cell in enumerate(cells):
        movement = _movement_of(cell)
        if movement:
            return index, movement
    return None


def _columns(cells: list[str], anchor: int) -> dict[str, str]:
    """Map cells to fields relative to the movement column."""
    def at(offset: int) -> str:
        index = anchor + offset
        return cells[index] if 0 <= index < len(cells) else ""

    return {
        "user": at(-4),
        "trigger": at(-3),
        "process": at(-2),
        "description": at(-1),
        "group": at(1),
        "attributes": at(2),
    }


def parse_table(markdown_text: str | None) -> list[Record]:
    """Parse every table row in ``markdown_text`` into Records.

    Returns an empty list when no row qualifies.
    """
    if not markdown_text:
        return []

    records: list[Record] = []
    current_process = ""

    for line in markdown_text.splitlines():
        cells = split_row(line)
        if cells is None or len(cells) < MIN_CELLS:
            continue
        if is_separator_row(cells) or is_header_row(cells):
            continue
        found = find_movement(cells)
        if found is None:
            continue
        anchor, movement = found
        fields = _columns(cells, anchor)

        process_cell = sanitize_text(fields["process"])
        starts_group = bool(process_cell) and (
            movement == MovementType.ENTRY or name_key(process_cell) != name_key(current_process)
        )
        if process_cell:
            current_process = process_cell
        elif movement == MovementType.ENTRY:
            current_process = ""

        description = sanitize_text(fields["description"])
        if current_process and (not description or looks_like_attribute_list(description)):
            description = regenerate_description(movement, current_process)

        user = trigger = ""
        if starts_group:
            user = sanitize_text(fields["user"])
            trigger = sanitize_text(fields["trigger"])
            if trigger:
                trigger = TriggerType.from_label(trigger).label
            if not user or not trigger:
                inferred_user, inferred_trigger = infer_trigger(current_process, user, trigger)
                user = user or inferred_user
                trigger = trigger or inferred_trigger

        records.append(Record(
            functional_user=user,
            trigger_event=trigger,
            functional_process=current_process if starts_group else "",
            sub_process_description=description,
            movement_type=movement,
            data_group=normalize_data_group(fields["group"], current_process),
            data_attributes=normalize_attributes(fields["attributes"], movement),
            process_context=current_process,
        ))

    return records


def has_table(text: str | None) -> bool:
    """True when ``text`` contains at least one parseable record row."""
    return bool(parse_table(text))
