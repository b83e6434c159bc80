"""Prompts for extracting the function inventory that users confirm before
batch splitting."""

from cosmic_extractor.prompts.splitting_prompt import truncate_document

FUNCTION_LIST_SYSTEM_PROMPT = """你是一个专业的软件需求分析师，擅长从需求文档中识别系统功能。你只输出JSON，不输出任何解释。"""


def build_function_list_prompt(document: str) -> str:
    """Ask for modules, functions and timed tasks as JSON."""
    return f"""请分析以下需求文档，列出系统的全部功能。

要求：
1. 按模块分组，每个功能名称采用"动词 + 业务对象"的形式，不要使用"数据处理"等笼统名称
2. triggerType 只能是 "用户触发"、"时钟触发"、"接口调用触发" 之一
3. 同一业务对象的增删改查分别列为不同功能
4. 定时执行的任务同时列入 timedTasks

输出格式：

```json
{{
  "projectName": "项目名称",
  "projectDescription": "项目描述",
  "totalFunctions": 2,
  "modules": [
    {{
      "moduleName": "模块名称",
      "functions": [
        {{
          "id": 1,
          "name": "新增巡检任务",
          "triggerType": "用户触发",
          "description": "用户创建一条巡检任务",
          "dataObjects": ["巡检任务"]
        }}
      ]
    }}
  ],
  "timedTasks": [
    {{"name": "巡检结果日汇总", "interval": "每天", "description": "汇总前一天的巡检结果"}}
  ],
  "suggestions": ["补充说明"]
}}
```

需求文档：

{truncate_document(document)}"""


ADDITIONAL_CONTEXT_CHARS = 2000
ADDITIONAL_EXISTING_LIMIT = 30


def build_additional_functions_prompt(
    description: str,
    existing: list[str] | None = None,
    document: str = "",
) -> str:
    """Ask for the functions a user's free-text request adds to the list.

    Only the first ADDITIONAL_EXISTING_LIMIT existing names are shown; the
    caller filters duplicates again after parsing.
    """
    sections = [f"用户补充了以下功能需求，请识别其中的功能过程。\n\n## 用户需求描述\n{description.strip()}"]
    if document.strip():
        sections.append(f"## 需求文档上下文（仅供参考）\n{truncate_document(document, ADDITIONAL_CONTEXT_CHARS)}")
    if existing:
        sections.append(f"## 已有功能（不要重复列出）\n{'、'.join(existing[:ADDITIONAL_EXISTING_LIMIT])}")
    sections.append("""## 要求
1. 每个功能名称采用"业务对象 + 操作动作"或"动词 + 业务对象"的形式，要具体到可以拆分
2. "查询/搜索/筛选"、"导出/下载"、"导入/上传"、"统计/汇总"、"新增"、"修改"、"删除"各自是独立功能
3. 描述中出现"定时"、"每天"、"周期"的功能，triggerType 为 "时钟触发"
4. triggerType 只能是 "用户触发"、"时钟触发"、"接口调用触发" 之一
5. 没有明确功能需求时输出空数组 []

只输出JSON数组：

```json
[
  {"name": "导出巡检报表", "triggerType": "用户触发", "description": "按条件导出巡检结果", "moduleName": "巡检管理"}
]
```""")
    return "\n\n".join(sections)
