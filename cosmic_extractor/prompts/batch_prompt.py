"""Prompt for splitting a batch of confirmed functions."""

import re

from cosmic_extractor.core.config import BatchConfig
from cosmic_extractor.pydantic_models.records import FunctionDescriptor
from cosmic_extractor.prompts.splitting_prompt import truncate_document

_KEYWORD_SPLIT = re.compile(r"数据|功能|处理|计算|评估|分析|查询|汇总|导出|导入")


def extract_keywords(name: str) -> str:
    """Business keywords of a function name, joined with 、.

    Splits on generic action words, keeps fragments longer than one
    character and takes the first three. Falls back to the whole name.
    """
    parts = [p.strip() for p in _KEYWORD_SPLIT.split(name) if len(p.strip()) > 1]
    if not parts:
        return name
    return "、".join(parts[:3])


def _describe(index: int, function: FunctionDescriptor) -> str:
    lines = [f"{index}. **{function.name}**", f"   - 触发方式：{function.trigger_type.label}"]
    if function.description:
        lines.append(f"   - 描述：{function.description}")
    if function.data_objects:
        lines.append(f"   - 涉及数据：{'、'.join(function.data_objects)}")
    lines.append(f"   - 提取关键词：{extract_keywords(function.name)}")
    return "\n".join(lines)


def build_batch_prompt(functions: list[FunctionDescriptor], document: str = "") -> str:
    """Prompt asking for exactly four rows for each of ``functions``."""
    count = len(functions)
    listing = "\n".join(_describe(i, f) for i, f in enumerate(functions, start=1))
    excerpt = ""
    if document:
        excerpt = f"""

## 原始文档（参考）

{truncate_document(document, BatchConfig.DOCUMENT_EXCERPT_CHARS)}"""

    return f"""你是一个COSMIC拆分专家。请对以下{count}个确认的功能进行ERWX拆分。

## 待拆分的功能

{listing}

## 拆分规则

| 类型 | 含义 | 子过程描述示例 |
|:---|:---|:---|
| E | 输入：接收请求或触发 | 接收XX请求参数 |
| R | 读取：读取持久数据 | 读取XX配置信息 |
| W | 写入：保存结果或日志 | 保存XX处理结果 |
| X | 输出：返回结果 | 返回XX执行结果 |

1. 功能过程名称必须与上面列出的名称完全一致
2. 每个功能严格输出4行，顺序为 E → R → W → X
3. 功能用户、触发事件、功能过程只写在E行
4. 子过程描述必须包含该功能的提取关键词
5. 数据属性用顿号分隔，每行3到8个

必须为全部{count}个功能输出，共{count * BatchConfig.ROWS_PER_FUNCTION}行。只输出Markdown表格，表头为：

|功能用户|触发事件|功能过程|子过程描述|数据移动类型|数据组|数据属性|{excerpt}"""
