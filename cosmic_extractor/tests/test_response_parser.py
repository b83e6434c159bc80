"""Tests for cosmic_extractor.core.response_parser module.

Tests the JSON recovery cascade:
- Candidate extraction (fences, outermost braces)
- Cleaning (comments, trailing commas, raw newlines)
- Relaxed parsing and truncated-output repair
- Heuristic function-list extraction from plain text
"""

import json

from cosmic_extractor.core.response_parser import (
    clean_json_text,
    extract_brace_fence,
    extract_json_fence,
    extract_outermost_braces,
    first_success,
    heuristic_function_list,
    parse_function_list_payload,
    parse_json,
    relaxed_parse,
    repair_truncated_json,
)


FUNCTION_LIST = {
    "projectName": "网优平台",
    "modules": [
        {"moduleName": "告警管理", "functions": [{"name": "查询告警工单"}, {"name": "导出告警报表"}]},
    ],
}


# =============================================================================
# Candidate extraction tests
# =============================================================================


class TestCandidates:
    """Tests for the candidate extractors."""

    def test_json_fence(self):
        text = 'Here you go:\n```json\n{"a": 1}\n```\nDone.'
        assert extract_json_fence(text) == '{"a": 1}'

    def test_json_fence_case_insensitive(self):
        assert extract_json_fence('```JSON\n{"a": 1}\n```') == '{"a": 1}'

    def test_unterminated_json_fence(self):
        assert extract_json_fence('```json\n{"a": [1, 2') == '{"a": [1, 2'

    def test_brace_fence_any_label(self):
        text = '```javascript\n{"a": 1}\n```'
        assert extract_brace_fence(text) == '{"a": 1}'

    def test_brace_fence_ignores_non_json(self):
        assert extract_brace_fence("```python\nprint(1)\n```") is None

    def test_outermost_braces(self):
        text = 'prefix {"a": {"b": "}"}} suffix'
        assert extract_outermost_braces(text) == '{"a": {"b": "}"}}'

    def test_outermost_braces_truncated_returns_tail(self):
        assert extract_outermost_braces('x {"a": [1, 2') == '{"a": [1, 2'

    def test_no_braces(self):
        assert extract_outermost_braces("no json here") is None


# =============================================================================
# Cleaning and decoding tests
# =============================================================================


class TestCleaning:
    """Tests for clean_json_text() and relaxed_parse()."""

    def test_removes_comments(self):
        cleaned = clean_json_text('{"a": 1, // note\n /* block */ "b": 2}')
        assert json.loads(cleaned) == {"a": 1, "b": 2}

    def test_keeps_slashes_inside_strings(self):
        cleaned = clean_json_text('{"url": "http://example.com"}')
        assert json.loads(cleaned) == {"url": "http://example.com"}

    def test_removes_trailing_commas(self):
        assert json.loads(clean_json_text('{"a": [1, 2,], "b": 3,}')) == {"a": [1, 2], "b": 3}

    def test_escapes_raw_newlines_in_strings(self):
        cleaned = clean_json_text('{"a": "line1\nline2"}')
        assert json.loads(cleaned) == {"a": "line1\nline2"}

    def test_strips_bom(self):
        assert json.loads(clean_json_text('\ufeff{"a": 1}')) == {"a": 1}

    def test_relaxed_bare_keys_and_single_quotes(self):
        assert relaxed_parse("{name: 'x', ok: True}") == {"name": "x", "ok": True}


# =============================================================================
# Truncation repair tests
# =============================================================================


class TestRepairTruncated:
    """Tests for repair_truncated_json()."""

    def test_closes_open_containers(self):
        assert repair_truncated_json('{"a": [1, 2') == {"a": [1, 2]}

    def test_closes_open_string(self):
        assert repair_truncated_json('{"a": "hel') == {"a": "hel"}

    def test_drops_incomplete_tail_element(self):
        text = '{"functions": [{"name": "查询告警"}, {"name": "导出报表", "desc'
        repaired = repair_truncated_json(text)
        assert repaired["functions"][0] == {"name": "查询告警"}

    def test_keeps_first_complete_element(self):
        repaired = repair_truncated_json('{"a": [{"name": "x", "id": 1}, {"name": "y"')
        assert repaired["a"][0] == {"name": "x", "id": 1}
        assert json.loads(json.dumps(repaired)) == repaired

    def test_complete_json_is_not_repaired(self):
        assert repair_truncated_json('{"a": 1}') is None

    def test_mismatched_closer(self):
        assert repair_truncated_json('{"a": [1}') is None


# =============================================================================
# parse_json tests
# =============================================================================


class TestParseJson:
    """Tests for the parse_json() cascade."""

    def test_strict_fenced_json(self):
        outcome = parse_json(f"```json\n{json.dumps(FUNCTION_LIST, ensure_ascii=False)}\n```")
        assert outcome.ok
        assert outcome.value == FUNCTION_LIST
        assert outcome.stage == "json_fence/strict"

    def test_bare_json_in_prose(self):
        outcome = parse_json(f"结果如下：{json.dumps(FUNCTION_LIST, ensure_ascii=False)} 以上。")
        assert outcome.value == FUNCTION_LIST
        assert outcome.stage.startswith("outermost_braces/")

    def test_truncated_reply_recovers_prefix(self):
        full = json.dumps(FUNCTION_LIST, ensure_ascii=False)
        truncated = full[: full.index("导出告警报表") + 2]
        outcome = parse_json(truncated)
        assert outcome.ok
        assert outcome.value["projectName"] == "网优平台"
        assert outcome.value["modules"][0]["functions"][0] == {"name": "查询告警工单"}

    def test_trailing_comma_and_comment(self):
        outcome = parse_json('{"a": 1, // c\n "b": [1,2,],}')
        assert outcome.value == {"a": 1, "b": [1, 2]}

    def test_empty_text(self):
        outcome = parse_json("   ")
        assert not outcome.ok
        assert outcome.diagnostics() == [{"stage": "input", "reason": "empty text"}]

    def test_plain_text_fails_with_diagnostics(self):
        outcome = parse_json("没有任何结构化内容")
        assert not outcome.ok
        assert {a["stage"] for a in outcome.diagnostics()} >= {"json_fence", "outermost_braces"}

    def test_empty_object_is_not_success(self):
        assert not parse_json("{}").ok


# =============================================================================
# first_success tests
# =============================================================================


class TestFirstSuccess:
    """Tests for first_success()."""

    def test_stops_at_first_value(self):
        attempts = []
        calls = []

        def stage(name, value):
            def run():
                calls.append(name)
                return value
            return name, run

        result = first_success([stage("a", None), stage("b", 2), stage("c", 3)], attempts)
        assert result == ("b", 2)
        assert calls == ["a", "b"]
        assert [a.stage for a in attempts] == ["a"]

    def test_raising_stage_is_recorded(self):
        attempts = []

        def boom():
            raise RuntimeError("bad")

        assert first_success([("boom", boom)], attempts) is None
        assert "RuntimeError" in attempts[0].reason


# =============================================================================
# Function-list payload tests
# =============================================================================


class TestFunctionListPayload:
    """Tests for parse_function_list_payload() and heuristic_function_list()."""

    def test_json_payload(self):
        outcome = parse_function_list_payload(json.dumps(FUNCTION_LIST, ensure_ascii=False))
        assert outcome.value["projectName"] == "网优平台"

    def test_bare_array_becomes_functions(self):
        outcome = parse_function_list_payload('[{"name": "查询告警工单"}]')
        assert outcome.value == {"functions": [{"name": "查询告警工单"}]}

    def test_heuristic_from_bullets(self):
        text = """项目名称：网优平台
## 告警管理模块
- 查询告警工单：按条件检索
- 导出告警报表
- 每天自动汇总告警数据
"""
        outcome = parse_function_list_payload(text)
        assert outcome.stage == "heuristic_text"
        payload = outcome.value
        assert payload["projectName"] == "网优平台"
        module = payload["modules"][0]
        assert module["moduleName"] == "告警管理模块"
        names = [f["name"] for f in module["functions"]]
        assert names == ["查询告警工单", "导出告警报表", "每天自动汇总告警数据"]
        assert module["functions"][0]["description"] == "按条件检索"
        assert module["functions"][2]["triggerType"] == "时钟触发"
        assert payload["timedTasks"][0]["interval"] == "每天"

    def test_heuristic_process_header_on_next_line(self):
        text = "功能过程：\n同步资源数据\n"
        payload = heuristic_function_list(text)
        assert payload["modules"][0]["functions"][0]["name"] == "同步资源数据"

    def test_heuristic_nothing_found(self):
        assert heuristic_function_list("今天天气很好。") is None

    def test_heuristic_dedupes_names(self):
        payload = heuristic_function_list("- 查询告警工单\n- 查询告警工单\n")
        assert len(payload["modules"][0]["functions"]) == 1
