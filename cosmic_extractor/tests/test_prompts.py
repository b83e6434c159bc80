"""Tests for prompt builders and the function-list agent.

Tests:
- Round prompts: document last, list caps, truncation
- Batch prompt: numbering, keyword hints, expected row count
- Function-list extraction from JSON and from plain text replies
- Additional functions from a free-text request
"""

import json

import pytest

from cosmic_extractor import orchestrator
from cosmic_extractor.agents.function_list_agent import extract_additional_functions, extract_function_list
from cosmic_extractor.core.config import RetryConfig
from cosmic_extractor.prompts.batch_prompt import build_batch_prompt, extract_keywords
from cosmic_extractor.prompts.function_list_prompt import build_additional_functions_prompt
from cosmic_extractor.prompts.splitting_prompt import (
    ALL_DONE_MARKER,
    build_first_round_prompt,
    build_followup_round_prompt,
    truncate_document,
)
from cosmic_extractor.pydantic_models.records import FunctionDescriptor, FunctionList, TriggerType


# =============================================================================
# Round prompts
# =============================================================================


class TestRoundPrompts:
    """Tests for the splitting round prompts."""

    def test_first_round_ends_with_document(self):
        prompt = build_first_round_prompt("文档正文", target=12)
        assert prompt.endswith("文档正文")
        assert "目标约 12 个" in prompt

    def test_guidelines_included(self):
        prompt = build_first_round_prompt("文档", guidelines="  查询类功能单独拆分  ")
        assert "查询类功能单独拆分" in prompt
        assert "用户特定的拆分要求" in prompt

    def test_blank_guidelines_omitted(self):
        assert "用户特定的拆分要求" not in build_first_round_prompt("文档", guidelines="   ")

    def test_followup_caps_lists(self):
        names = [f"功能{i}" for i in range(40)]
        descriptions = [f"描述{i}" for i in range(60)]

        prompt = build_followup_round_prompt("文档", names, descriptions, target=50)

        assert "功能29" in prompt
        assert "功能30" not in prompt
        assert "描述49" in prompt
        assert "描述50" not in prompt
        assert "（共40个，请勿重复）" in prompt
        assert "还需约 10 个" in prompt
        assert prompt.endswith("文档")

    def test_followup_offers_done_marker(self):
        assert ALL_DONE_MARKER in build_followup_round_prompt("文档", [], [], target=5)

    def test_truncate_document(self):
        assert truncate_document("短", max_chars=10) == "短"
        cut = truncate_document("字" * 20, max_chars=10)
        assert cut == "字" * 10 + RetryConfig.TRUNCATION_MARKER


# =============================================================================
# Batch prompt
# =============================================================================


class TestBatchPrompt:
    """Tests for build_batch_prompt() and extract_keywords()."""

    @pytest.mark.parametrize("name,keywords", [
        ("查询告警工单数据", "告警工单"),
        ("小区性能汇总分析", "小区性能"),
        ("导出", "导出"),
    ])
    def test_extract_keywords(self, name, keywords):
        assert extract_keywords(name) == keywords

    def test_lists_every_function(self, names_in_batch_prompt):
        functions = [
            FunctionDescriptor(id=1, name="查询告警工单", description="按条件检索"),
            FunctionDescriptor(id=2, name="汇总小区性能", trigger_type="时钟触发", data_objects="小区，性能指标"),
        ]

        prompt = build_batch_prompt(functions)

        assert names_in_batch_prompt(prompt) == ["查询告警工单", "汇总小区性能"]
        assert "以下2个确认的功能" in prompt
        assert "共8行" in prompt
        assert "触发方式：时钟触发" in prompt
        assert "涉及数据：小区、性能指标" in prompt
        assert "原始文档" not in prompt

    def test_document_excerpt_last(self):
        prompt = build_batch_prompt([FunctionDescriptor(id=1, name="查询告警工单")], document="原文内容")
        assert prompt.endswith("原文内容")


# =============================================================================
# Function list
# =============================================================================


class TestFunctionList:
    """Tests for FunctionList and extract_function_list()."""

    def test_descriptors_flatten_and_dedupe(self):
        function_list = FunctionList.from_payload({
            "modules": [
                {"moduleName": "告警", "functions": [{"name": "查询告警工单"}, {"name": "查询告警工单 "}, "junk"]},
            ],
            "functions": [{"name": "导出站点清单", "triggerType": "接口调用触发"}],
            "timedTasks": [{"name": "汇总性能", "interval": "每小时"}, {"name": "导出站点清单"}],
        })

        descriptors = function_list.descriptors()

        assert [(d.id, d.name) for d in descriptors] == [(1, "查询告警工单"), (2, "导出站点清单"), (3, "汇总性能")]
        assert descriptors[1].trigger_type == TriggerType.INTERFACE
        assert descriptors[2].trigger_type == TriggerType.TIMER
        assert descriptors[2].description == "每小时"

    @pytest.mark.asyncio
    async def test_extract_from_json(self, chat_client, mock_acompletion, make_chat_response):
        payload = {"projectName": "网优平台", "modules": [{"moduleName": "告警", "functions": [{"name": "查询告警工单"}]}]}
        mock_acompletion.return_value = make_chat_response(f"```json\n{json.dumps(payload, ensure_ascii=False)}\n```")

        function_list, issues = await extract_function_list(chat_client, "文档")

        assert issues == []
        assert function_list.project_name == "网优平台"
        assert [d.name for d in function_list.descriptors()] == ["查询告警工单"]

    @pytest.mark.asyncio
    async def test_extract_from_bullets(self, chat_client, mock_acompletion, make_chat_response):
        mock_acompletion.return_value = make_chat_response("## 告警模块\n- 查询告警工单\n- 导出告警报表\n")

        function_list, issues = await extract_function_list(chat_client, "文档")

        assert issues == []
        assert function_list.function_count == 2

    @pytest.mark.asyncio
    async def test_unusable_reply(self, chat_client, mock_acompletion, make_chat_response):
        mock_acompletion.return_value = make_chat_response("好的。")

        function_list, issues = await extract_function_list(chat_client, "文档")

        assert function_list.function_count == 0
        assert [i.category.value for i in issues] == ["malformed_output"]


# =============================================================================
# Additional functions
# =============================================================================


class TestAdditionalFunctions:
    """Tests for build_additional_functions_prompt() and extract_additional_functions()."""

    def test_prompt_sections(self):
        existing = [f"功能{i}" for i in range(40)]
        prompt = build_additional_functions_prompt("增加巡检报表导出", existing, document="文" * 3000)

        assert "增加巡检报表导出" in prompt
        assert "功能29" in prompt
        assert "功能30" not in prompt
        assert RetryConfig.TRUNCATION_MARKER in prompt
        assert "文" * 2001 not in prompt

    def test_prompt_without_context(self):
        prompt = build_additional_functions_prompt("增加巡检报表导出")
        assert "已有功能" not in prompt
        assert "需求文档上下文" not in prompt

    @pytest.mark.asyncio
    async def test_overlapping_names_dropped(self, chat_client, mock_acompletion, make_chat_response):
        reply = [
            {"name": "查询告警工单", "triggerType": "用户触发"},
            {"name": "查询告警", "triggerType": "用户触发"},
            {"name": "导出巡检报表", "triggerType": "用户触发", "moduleName": "巡检管理"},
            {"name": "每天汇总巡检结果", "triggerType": "时钟触发", "moduleName": "巡检管理"},
        ]
        mock_acompletion.return_value = make_chat_response(json.dumps(reply, ensure_ascii=False))

        functions, issues = await extract_additional_functions(
            chat_client, "增加巡检报表导出和每天的巡检汇总", existing=["查询告警工单"],
        )

        assert issues == []
        assert [(d.id, d.name) for d in functions] == [(1, "导出巡检报表"), (2, "每天汇总巡检结果")]
        assert functions[0].module_name == "巡检管理"
        assert functions[1].trigger_type == TriggerType.TIMER
        assert "查询告警工单" in mock_acompletion.call_args.kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_overlap_is_case_insensitive(self, chat_client, mock_acompletion, make_chat_response):
        mock_acompletion.return_value = make_chat_response('[{"name": "导出KPI报表"}]')

        functions, _ = await extract_additional_functions(chat_client, "导出kpi报表", existing=["导出kpi报表"])

        assert functions == []

    @pytest.mark.asyncio
    async def test_empty_array_is_not_an_issue(self, chat_client, mock_acompletion, make_chat_response):
        mock_acompletion.return_value = make_chat_response("```json\n[]\n```")

        functions, issues = await extract_additional_functions(chat_client, "随便聊聊")

        assert functions == []
        assert issues == []

    @pytest.mark.asyncio
    async def test_unusable_reply(self, chat_client, mock_acompletion, make_chat_response):
        mock_acompletion.return_value = make_chat_response("好的。")

        functions, issues = await extract_additional_functions(chat_client, "增加巡检报表导出")

        assert functions == []
        assert [i.category.value for i in issues] == ["malformed_output"]

    @pytest.mark.asyncio
    async def test_blank_description_rejected(self, chat_client, mock_acompletion):
        with pytest.raises(ValueError):
            await extract_additional_functions(chat_client, "   ")
        mock_acompletion.assert_not_called()

    @pytest.mark.asyncio
    async def test_service_operation_uses_given_client(self, chat_client, mock_acompletion, make_chat_response):
        mock_acompletion.return_value = make_chat_response('[{"name": "导出巡检报表"}]')

        functions, issues = await orchestrator.extract_additional_functions(
            "增加巡检报表导出", existing=[], document="巡检需求", client=chat_client,
        )

        assert [d.name for d in functions] == ["导出巡检报表"]
        assert "巡检需求" in mock_acompletion.call_args.kwargs["messages"][1]["content"]
