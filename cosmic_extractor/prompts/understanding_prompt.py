"""Prompts for the optional document-understanding call.

The understanding is never trusted as data. It is rendered back into the
splitting prompts as background so the model keeps the module list and
expected process count in view across rounds.
"""

from cosmic_extractor.pydantic_models.understanding_models import DocumentUnderstanding

UNDERSTANDING_SYSTEM_PROMPT = """你是一名业务架构师与COSMIC分析专家。你的任务是通读需求文档，理解系统边界、用户角色、数据实体和功能模块，为后续的功能过程拆分做准备。只输出JSON，不要输出其他内容。"""


def build_understanding_prompt(document: str) -> str:
    """User prompt asking for the understanding JSON."""
    return f"""请对以下需求文档进行深度分析：

1. 文档解耦：识别系统边界、功能用户（人、其他系统、定时器）、数据实体、外部接口
2. 过程估算：按模块列出核心功能，估算每个模块的功能过程数量，区分用户触发、时钟触发、接口调用触发

请严格按照以下JSON格式输出：

```json
{{
  "projectName": "项目名称",
  "projectDescription": "一句话描述",
  "systemArchitecture": "系统架构概述",
  "systemBoundary": "系统边界说明",
  "userRoles": ["角色1", "角色2"],
  "dataEntities": ["实体1", "实体2"],
  "externalInterfaces": ["外部系统1"],
  "functionBreakdown": {{
    "userTriggeredFunctions": 10,
    "timerTriggeredFunctions": 3,
    "interfaceTriggeredFunctions": 2
  }},
  "coreModules": [
    {{"moduleName": "模块名称", "estimatedFunctions": 5}}
  ],
  "timedTasks": ["定时任务1"],
  "totalEstimatedFunctions": 15
}}
```

---

**文档内容：**

{document}"""


def render_understanding_context(understanding: DocumentUnderstanding | None) -> str:
    """Render an understanding as a prompt section. Empty string if None."""
    if understanding is None:
        return ""

    lines = ["## 文档理解（仅供参考）"]
    if understanding.project_name:
        lines.append(f"- 项目：{understanding.project_name}")
    if understanding.project_description:
        lines.append(f"- 概述：{understanding.project_description}")
    if understanding.system_boundary:
        lines.append(f"- 系统边界：{understanding.system_boundary}")
    if understanding.user_roles:
        lines.append(f"- 用户角色：{'、'.join(understanding.user_roles)}")
    if understanding.data_entities:
        lines.append(f"- 数据实体：{'、'.join(understanding.data_entities)}")
    if understanding.external_interfaces:
        lines.append(f"- 外部接口：{'、'.join(understanding.external_interfaces)}")
    if understanding.core_modules:
        modules = "、".join(
            f"{m.module_name}（约{m.estimated_functions}个）" if m.estimated_functions else m.module_name
            for m in understanding.core_modules
            if m.module_name
        )
        if modules:
            lines.append(f"- 核心模块：{modules}")
    if understanding.timed_tasks:
        lines.append(f"- 定时任务：{'、'.join(understanding.timed_tasks)}")
    if understanding.total_estimated_functions:
        lines.append(f"- 预估功能过程总数：{understanding.total_estimated_functions}")

    if len(lines) == 1:
        return ""
    return "\n".join(lines) + "\n"
