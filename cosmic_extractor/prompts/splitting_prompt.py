"""Round prompts for the multi-round splitting loop.

Round 1 asks for a first table. Every later round lists what has already
been produced so the model adds new processes instead of repeating old ones,
and gives it a way out with the [ALL_DONE] marker.

The document always comes last: when a call hits the token limit the
provider client cuts the prompt from the end, which then only loses
document text, never the instructions.
"""

from cosmic_extractor.core.config import RetryConfig, RoundConfig

ALL_DONE_MARKER = "[ALL_DONE]"


def truncate_document(document: str, max_chars: int = RoundConfig.DOCUMENT_PROMPT_CHARS) -> str:
    """Cut ``document`` to ``max_chars`` and append the truncation marker."""
    if len(document) <= max_chars:
        return document
    return document[:max_chars] + RetryConfig.TRUNCATION_MARKER


def _guidelines_section(guidelines: str | None) -> str:
    if not guidelines or not guidelines.strip():
        return ""
    return f"""
## 用户特定的拆分要求
{guidelines.strip()}

请严格遵守以上要求进行拆分。
"""


def build_first_round_prompt(
    document: str,
    target: int = RoundConfig.DEFAULT_TARGET,
    guidelines: str | None = None,
    understanding_context: str = "",
) -> str:
    """Prompt for round 1."""
    return f"""请对下面的需求文档进行COSMIC功能拆分。
{_guidelines_section(guidelines)}
{understanding_context}
## 拆分要求

1. 识别文档中所有的功能过程，目标约 {target} 个
2. 每个功能过程按 E → R → W → X 顺序拆分为4行
3. 功能用户、触发事件、功能过程只写在E行，R、W、X行留空
4. 子过程描述要具体，包含业务关键词，不能重复
5. 数据属性用顿号分隔，每行3到8个

## 输出示例

|功能用户|触发事件|功能过程|子过程描述|数据移动类型|数据组|数据属性|
|:---|:---|:---|:---|:---|:---|:---|
|发起者：用户 接收者：用户|用户触发|查询告警工单|接收告警工单查询条件|E|告警工单查询请求|工单编号、告警级别、查询时间|
||||读取告警工单记录|R|告警工单表|工单编号、告警内容、处理状态|
||||记录告警工单查询日志|W|告警工单查询日志|日志ID、操作人、查询时间|
||||返回告警工单查询结果|X|告警工单查询响应|工单编号、告警内容、处理状态|

只输出Markdown表格，不要输出其他内容。

## 需求文档

{truncate_document(document)}"""


def _listed(items: list[str], limit: int, separator: str, more: str) -> str:
    shown = separator.join(items[:limit])
    if len(items) > limit:
        shown += more
    return shown


def build_followup_round_prompt(
    document: str,
    completed_names: list[str],
    used_descriptions: list[str],
    target: int = RoundConfig.DEFAULT_TARGET,
    understanding_context: str = "",
) -> str:
    """Prompt for round 2 onwards.

    Lists at most 30 completed process names and 50 used sub-process
    descriptions so the prompt does not grow with every round.
    """
    completed = _listed(completed_names, RoundConfig.MAX_LISTED_PROCESS_NAMES, "、", "...")
    used = _listed(
        used_descriptions, RoundConfig.MAX_LISTED_SUBPROCESS_DESCRIPTIONS, "\n", "\n...(更多)",
    )
    remaining = max(target - len(completed_names), 0)

    return f"""继续对需求文档进行COSMIC拆分。
{understanding_context}
## 已完成的功能过程（共{len(completed_names)}个，请勿重复）
{completed or "无"}

## 已使用的子过程描述（请勿重复）
{used or "无"}

## 本轮要求

1. 目标共约 {target} 个功能过程，还需约 {remaining} 个
2. 只输出上面未列出的新功能过程，每个按 E → R → W → X 拆分为4行
3. 子过程描述不能与已使用的描述重复
4. 只输出Markdown表格，表头与之前一致

如果文档中的所有功能都已拆分完毕，请只回复 "{ALL_DONE_MARKER}"。

## 需求文档

{truncate_document(document)}"""
