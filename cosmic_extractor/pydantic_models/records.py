"""Pydantic schemas for decomposition records and function descriptors.

Field names are snake_case in Python and camelCase on the wire
(``model_dump(by_alias=True)``), matching the JSON the front end and the
function-list prompt use.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class MovementType(str, Enum):
    """COSMIC data movement kinds, in the order a process performs them."""
    ENTRY = "E"
    READ = "R"
    WRITE = "W"
    EXIT = "X"


MOVEMENT_ORDER: tuple[MovementType, ...] = (
    MovementType.ENTRY, MovementType.READ, MovementType.WRITE, MovementType.EXIT,
)


class TriggerType(str, Enum):
    USER = "user"
    TIMER = "timer"
    INTERFACE = "interface"

    @classmethod
    def from_label(cls, label: str | None) -> "TriggerType":
        """Read English or Chinese trigger labels ("时钟触发", "timer", ...)."""
        text = (label or "").strip().lower()
        if not text:
            return cls.USER
        if text in ("timer", "clock", "scheduled") or any(k in text for k in ("时钟", "定时", "周期")):
            return cls.TIMER
        if text in ("interface", "api") or "接口" in text:
            return cls.INTERFACE
        return cls.USER

    @property
    def label(self) -> str:
        return {
            TriggerType.USER: "用户触发",
            TriggerType.TIMER: "时钟触发",
            TriggerType.INTERFACE: "接口调用触发",
        }[self]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Record(_CamelModel):
    """One row of the decomposition table.

    Only the first row of a functional-process group (normally the E row)
    carries functional_user, trigger_event and functional_process; the
    following rows of the group leave them empty.

    Attributes:
        functional_user: "发起者：X 接收者：Y"
        trigger_event: 用户触发 / 时钟触发 / 接口调用触发
        functional_process: Process name, first row of the group only
        sub_process_description: What this movement does
        movement_type: E, R, W or X
        data_group: Data group moved
        data_attributes: Attribute names, already normalized
        process_context: Name of the group this row belongs to (not serialized)
    """

    functional_user: str = Field(default="", description="Initiator and receiver of the process")
    trigger_event: str = Field(default="", description="What starts the process")
    functional_process: str = Field(default="", description="Process name, first row of a group only")
    sub_process_description: str = Field(default="", description="What this movement does")
    movement_type: MovementType = Field(description="E, R, W or X")
    data_group: str = Field(default="", description="Data group moved")
    data_attributes: list[str] = Field(default_factory=list, description="Attribute names")
    process_context: str = Field(default="", exclude=True)

    @property
    def starts_group(self) -> bool:
        return bool(self.functional_process)

    @property
    def group_name(self) -> str:
        return self.functional_process or self.process_context

    def cells(self) -> list[str]:
        """The seven table cells, attributes joined with 、."""
        return [
            self.functional_user,
            self.trigger_event,
            self.functional_process,
            self.sub_process_description,
            self.movement_type.value,
            self.data_group,
            "、".join(self.data_attributes),
        ]

    def to_markdown_row(self) -> str:
        return "|" + "|".join(self.cells()) + "|"


TABLE_HEADER = "|功能用户|触发事件|功能过程|子过程描述|数据移动类型|数据组|数据属性|"
TABLE_SEPARATOR = "|:---|:---|:---|:---|:---|:---|:---|"


def records_to_markdown(records: list[Record]) -> str:
    """Render records back into the table format the models produce."""
    lines = [TABLE_HEADER, TABLE_SEPARATOR]
    lines.extend(record.to_markdown_row() for record in records)
    return "\n".join(lines)


class FunctionDescriptor(_CamelModel):
    """One confirmed function awaiting decomposition.

    Attributes:
        id: Position-independent identifier
        name: Function (process) name
        trigger_type: user, timer or interface
        module_name: Owning module
        description: One-line description
        data_objects: Data objects the function touches
        selected: Only selected functions are split
    """

    id: int | str = Field(description="Identifier")
    name: str = Field(description="Function name, verb + business object")
    trigger_type: TriggerType = Field(default=TriggerType.USER)
    module_name: str = Field(default="")
    description: str = Field(default="")
    data_objects: list[str] = Field(default_factory=list)
    selected: bool = Field(default=True)

    @field_validator("trigger_type", mode="before")
    @classmethod
    def _read_trigger_label(cls, value):
        if isinstance(value, TriggerType):
            return value
        return TriggerType.from_label(value)

    @field_validator("data_objects", mode="before")
    @classmethod
    def _split_data_objects(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [v.strip() for v in value.replace("，", "、").replace(",", "、").split("、") if v.strip()]
        return value


class ModuleFunctions(_CamelModel):
    module_name: str = Field(default="")
    functions: list[dict] = Field(default_factory=list)


class TimedTask(_CamelModel):
    name: str
    interval: str = ""
    description: str = ""


class FunctionList(_CamelModel):
    """Function inventory extracted from a document, before user confirmation."""

    project_name: str = Field(default="")
    project_description: str = Field(default="")
    modules: list[ModuleFunctions] = Field(default_factory=list)
    timed_tasks: list[TimedTask] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict) -> "FunctionList":
        """Tolerant construction from model JSON.

        Accepts the nested ``modules`` shape or a flat ``functions`` list and
        drops entries that are not objects.
        """
        modules = []
        for module in payload.get("modules") or []:
            if isinstance(module, dict):
                modules.append(ModuleFunctions(
                    module_name=str(module.get("moduleName") or module.get("name") or ""),
                    functions=[f for f in module.get("functions") or [] if isinstance(f, dict)],
                ))
        flat = [f for f in payload.get("functions") or [] if isinstance(f, dict)]
        if flat:
            modules.append(ModuleFunctions(module_name="", functions=flat))

        timed = [
            TimedTask(
                name=str(t.get("name")),
                interval=str(t.get("interval") or ""),
                description=str(t.get("description") or ""),
            )
            for t in payload.get("timedTasks") or []
            if isinstance(t, dict) and t.get("name")
        ]
        suggestions = [str(s) for s in payload.get("suggestions") or [] if s]

        return cls(
            project_name=str(payload.get("projectName") or ""),
            project_description=str(payload.get("projectDescription") or ""),
            modules=modules,
            timed_tasks=timed,
            suggestions=suggestions,
        )

    def descriptors(self) -> list[FunctionDescriptor]:
        """Flatten into ordered descriptors with sequential ids.

        Timed tasks not already listed as functions are appended as timer
        functions. Names are unique case-insensitively.
        """
        result: list[FunctionDescriptor] = []
        seen: set[str] = set()

        def add(name: str, **fields) -> None:
            name = name.strip()
            if not name or name.lower() in seen:
                return
            seen.add(name.lower())
            result.append(FunctionDescriptor(id=len(result) + 1, name=name, **fields))

        for module in self.modules:
            for fn in module.functions:
                add(
                    str(fn.get("name") or ""),
                    trigger_type=fn.get("triggerType") or fn.get("trigger_type"),
                    module_name=module.module_name or str(fn.get("moduleName") or ""),
                    description=str(fn.get("description") or ""),
                    data_objects=fn.get("dataObjects") or fn.get("data_objects") or [],
                )
        for task in self.timed_tasks:
            description = task.description
            if task.interval:
                description = f"{description}（{task.interval}）" if description else task.interval
            add(task.name, trigger_type=TriggerType.TIMER, description=description)
        return result

    @property
    def function_count(self) -> int:
        return len(self.descriptors())
