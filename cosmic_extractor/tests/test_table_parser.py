"""Tests for cosmic_extractor.core.table_parser module.

Tests Markdown table parsing into Records:
- Row splitting, header and separator detection
- Group carry-over for rows without a process name
- Short rows anchored on the movement column
- Cleaning applied on the way in
"""

from cosmic_extractor.core.normalizer import Deduplicator, complete_groups
from cosmic_extractor.core.table_parser import (
    find_movement,
    has_table,
    is_header_row,
    is_separator_row,
    parse_table,
    split_row,
)
from cosmic_extractor.pydantic_models.records import MovementType, records_to_markdown


# =============================================================================
# Row helpers
# =============================================================================


class TestRowHelpers:
    """Tests for split_row(), is_header_row(), is_separator_row(), find_movement()."""

    def test_split_row_strips_outer_pipes(self):
        assert split_row("| a | b |c|") == ["a", "b", "c"]

    def test_split_row_keeps_empty_cells(self):
        assert split_row("||||d|R|") == ["", "", "", "d", "R"]

    def test_split_row_rejects_prose(self):
        assert split_row("no table here") is None

    def test_header_row(self):
        assert is_header_row(["功能用户", "触发事件", "功能过程", "子过程描述", "数据移动类型", "数据组", "数据属性"])

    def test_separator_row(self):
        assert is_separator_row([":---", "---", ":--:", "---:", "---"])
        assert not is_separator_row(["a", "---"])

    def test_find_movement_prefers_fifth_column(self):
        assert find_movement(["", "", "", "E", "R", "g", "a"]) == (4, MovementType.READ)

    def test_find_movement_falls_back_to_first_match(self):
        assert find_movement(["读取数据", "W", "日志表", "a、b、c", "备注"]) == (1, MovementType.WRITE)

    def test_find_movement_case_insensitive(self):
        assert find_movement(["", "", "", "", "x", "", ""]) == (4, MovementType.EXIT)


# =============================================================================
# parse_table tests
# =============================================================================


class TestParseTable:
    """Tests for parse_table()."""

    def test_parses_groups(self, sample_table):
        records = parse_table(sample_table)
        assert len(records) == 8
        assert [r.movement_type.value for r in records[:4]] == ["E", "R", "W", "X"]
        assert records[0].functional_process == "查询告警工单"
        assert records[4].functional_process == "导出告警统计报表"

    def test_only_first_row_carries_group_fields(self, sample_table):
        records = parse_table(sample_table)
        head, *rest = records[:4]
        assert head.functional_user and head.trigger_event and head.functional_process
        for record in rest:
            assert (record.functional_user, record.trigger_event, record.functional_process) == ("", "", "")
            assert record.process_context == "查询告警工单"

    def test_skips_prose_header_and_separator(self, sample_table):
        text = f"下面是拆分结果：\n\n{sample_table}\n\n以上共2个功能过程。"
        assert len(parse_table(text)) == 8

    def test_empty_and_none(self):
        assert parse_table("") == []
        assert parse_table(None) == []
        assert not has_table("只有文字")

    def test_rows_with_too_few_cells_are_skipped(self):
        assert parse_table("|E|请求|a|") == []

    def test_short_row_anchored_on_movement(self):
        records = parse_table("|查询工单|接收工单查询请求|E|工单请求|工单编号、查询时间、操作人|")
        assert len(records) == 1
        record = records[0]
        assert record.functional_process == "查询工单"
        assert record.sub_process_description == "接收工单查询请求"
        assert record.data_group == "工单请求"

    def test_missing_user_and_trigger_are_inferred(self):
        records = parse_table("|||每天汇总小区性能|读取小区性能数据|E|小区性能|小区编号、统计时间、指标值|")
        assert records[0].functional_user == "发起者：定时触发器 接收者：网优平台"
        assert records[0].trigger_event == "时钟触发"

    def test_trigger_label_is_canonical(self):
        records = parse_table("|发起者：用户 接收者：用户|定时触发|同步资源|接收同步请求|E|资源|资源编号、资源名称、同步时间|")
        assert records[0].trigger_event == "时钟触发"

    def test_annotations_stripped(self):
        records = parse_table("|发起者：用户 接收者：用户|用户触发|查询工单【新增】|接收工单请求[1]|E|工单请求(1)|工单编号、查询时间、操作人|")
        record = records[0]
        assert record.functional_process == "查询工单"
        assert record.sub_process_description == "接收工单请求"
        assert record.data_group == "工单请求"

    def test_attribute_list_description_regenerated(self):
        records = parse_table("|发起者：用户 接收者：用户|用户触发|查询告警工单|工单编号、告警级别、处理状态|E|告警工单请求|工单编号、告警级别、处理状态|")
        assert records[0].sub_process_description == "接收告警工单请求"

    def test_new_name_on_non_entry_row_starts_group(self):
        text = "\n".join([
            "|发起者：用户 接收者：用户|用户触发|查询工单|接收工单请求|E|工单请求|工单编号、查询时间、操作人|",
            "|||导出报表|读取报表数据|R|报表|报表编号、报表名称、生成时间|",
        ])
        records = parse_table(text)
        assert records[1].functional_process == "导出报表"
        assert records[1].process_context == "导出报表"

    def test_repeated_name_on_following_row_continues_group(self):
        text = "\n".join([
            "|发起者：用户 接收者：用户|用户触发|查询工单|接收工单请求|E|工单请求|工单编号、查询时间、操作人|",
            "|||查询工单|读取工单数据|R|工单表|工单编号、工单内容、更新时间|",
        ])
        records = parse_table(text)
        assert records[1].functional_process == ""
        assert records[1].process_context == "查询工单"

    def test_unnamed_entry_row_ends_group(self):
        text = "\n".join([
            "|发起者：用户 接收者：用户|用户触发|查询设备|接收设备查询请求|E|设备查询请求|设备编号、设备名称、查询时间|",
            "||||读取设备信息|R|设备表|设备编号、设备名称、设备状态|",
            "||||接收导出请求|E|导出请求|导出格式、操作人、请求时间|",
            "||||保存导出记录|W|导出日志|日志ID、操作人、导出时间|",
        ])
        records = parse_table(text)
        assert [r.process_context for r in records] == ["查询设备", "查询设备", "", ""]
        assert [r.functional_process for r in records] == ["查询设备", "", "", ""]

    def test_unnamed_group_dropped_on_merge(self):
        text = "\n".join([
            "|发起者：用户 接收者：用户|用户触发|查询设备|接收设备查询请求|E|设备查询请求|设备编号、设备名称、查询时间|",
            "||||读取设备信息|R|设备表|设备编号、设备名称、设备状态|",
            "||||接收导出请求|E|导出请求|导出格式、操作人、请求时间|",
            "||||保存导出记录|W|导出日志|日志ID、操作人、导出时间|",
        ])
        completed = complete_groups(parse_table(text))
        added = Deduplicator().merge(completed)
        assert [r.movement_type.value for r in added] == ["E", "R", "W", "X"]
        assert {r.process_context for r in added} == {"查询设备"}

    def test_attributes_backfilled_to_minimum(self):
        records = parse_table("|发起者：用户 接收者：用户|用户触发|查询工单|接收工单请求|E|工单请求|工单编号|")
        assert len(records[0].data_attributes) == 3
        assert records[0].data_attributes[0] == "工单编号"

    def test_parse_is_idempotent_over_rendering(self, sample_table):
        first = parse_table(sample_table)
        second = parse_table(records_to_markdown(first))
        assert second == first
