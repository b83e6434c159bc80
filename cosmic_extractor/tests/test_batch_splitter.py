"""Tests for cosmic_extractor.phases.batch_split_phase module.

Tests batch splitting of a confirmed function list:
- Cursor arithmetic and the done flag
- Selection and previous-record merging
- Omission detection and the supplemental pass
"""

import pytest

from cosmic_extractor.core.errors import ExhaustedAllModelsError
from cosmic_extractor.core.table_parser import parse_table
from cosmic_extractor.orchestrator import split_confirmed_functions
from cosmic_extractor.phases.batch_split_phase import (
    BatchSplitter,
    find_missed,
    is_covered,
    keyword_tokens,
)
from cosmic_extractor.pydantic_models.records import FunctionDescriptor


def _functions(count: int) -> list[FunctionDescriptor]:
    return [FunctionDescriptor(id=i, name=f"同步第{i}批次资源") for i in range(1, count + 1)]


@pytest.fixture
def echo_batch(mock_acompletion, make_table, make_chat_response, names_in_batch_prompt):
    """Answer each batch prompt with a table for every listed function."""
    def reply(**kwargs):
        return make_chat_response(make_table(names_in_batch_prompt(kwargs["messages"][1]["content"])))

    mock_acompletion.side_effect = reply
    return mock_acompletion


@pytest.fixture
def lossy_batch(mock_acompletion, make_table, make_chat_response, names_in_batch_prompt):
    """Like echo_batch, but drops the last function of any batch longer than three."""
    def reply(**kwargs):
        names = names_in_batch_prompt(kwargs["messages"][1]["content"])
        if len(names) > 3:
            names = names[:-1]
        return make_chat_response(make_table(names))

    mock_acompletion.side_effect = reply
    return mock_acompletion


# =============================================================================
# Keyword matching
# =============================================================================


class TestKeywordMatching:
    """Tests for keyword_tokens(), is_covered() and find_missed()."""

    @pytest.mark.parametrize("name,tokens", [
        ("查询告警工单", ["告警工单"]),
        ("小区性能数据汇总", ["小区性能"]),
        ("cell status_sync", ["cell", "status", "sync"]),
        ("导出", ["导出"]),
    ])
    def test_keyword_tokens(self, name, tokens):
        assert keyword_tokens(name) == tokens

    def test_exact_name_covers(self):
        function = FunctionDescriptor(id=1, name="查询告警工单")
        assert is_covered(function, ["  查询告警工单 "])

    def test_keyword_overlap_covers(self):
        function = FunctionDescriptor(id=1, name="小区性能数据汇总")
        assert is_covered(function, ["汇总全网小区性能指标"])

    def test_overlap_ratio(self):
        function = FunctionDescriptor(id=1, name="基站 告警 统计")
        assert is_covered(function, ["基站告警查看"])
        assert not is_covered(function, ["基站查看"])

    def test_find_missed(self):
        batch = [FunctionDescriptor(id=1, name="查询告警工单"), FunctionDescriptor(id=2, name="导出站点清单")]
        assert [f.name for f in find_missed(batch, ["查询告警工单"])] == ["导出站点清单"]


# =============================================================================
# Cursor
# =============================================================================


class TestCursor:
    """Tests for BatchSplitter.split() cursor handling."""

    @pytest.mark.asyncio
    async def test_walks_23_functions_in_three_batches(self, chat_client, echo_batch):
        splitter = BatchSplitter(chat_client)
        functions = _functions(23)
        records = []
        index = 0
        seen = []

        while True:
            result = await splitter.split(functions, records, index)
            seen.append((result.next_processed_index, result.is_done))
            records = result.records
            if result.is_done:
                break
            index = result.next_processed_index

        assert seen == [(10, False), (20, False), (23, True)]
        assert echo_batch.call_count == 3
        assert result.total_functions == 23
        assert len({r.functional_process for r in records if r.functional_process}) == 23
        assert result.missed_functions == []

    @pytest.mark.asyncio
    async def test_batch_prompt_lists_batch_only(self, chat_client, echo_batch, names_in_batch_prompt, prompt_of):
        await BatchSplitter(chat_client).split(_functions(23), [], 10)
        names = names_in_batch_prompt(prompt_of(echo_batch.call_args))
        assert names == [f"同步第{i}批次资源" for i in range(11, 21)]

    @pytest.mark.asyncio
    async def test_index_past_end_is_done_without_call(self, chat_client, echo_batch):
        result = await BatchSplitter(chat_client).split(_functions(5), [], 5)
        assert result.is_done
        assert result.next_processed_index == 5
        echo_batch.assert_not_called()

    @pytest.mark.asyncio
    async def test_cursor_past_end_does_not_move_back(self, chat_client, echo_batch):
        result = await BatchSplitter(chat_client).split(_functions(23), [], 30)

        assert result.is_done
        assert result.next_processed_index == 30
        assert result.total_functions == 23
        echo_batch.assert_not_called()

    @pytest.mark.asyncio
    async def test_negative_index_rejected(self, chat_client, echo_batch):
        with pytest.raises(ValueError):
            await BatchSplitter(chat_client).split(_functions(5), [], -1)

    def test_batch_size_must_be_positive(self, chat_client):
        with pytest.raises(ValueError):
            BatchSplitter(chat_client, batch_size=0)

    @pytest.mark.asyncio
    async def test_unselected_functions_skipped(self, chat_client, echo_batch, names_in_batch_prompt, prompt_of):
        functions = _functions(5)
        functions[1] = functions[1].model_copy(update={"selected": False})
        functions[3] = functions[3].model_copy(update={"selected": False})

        result = await BatchSplitter(chat_client).split(functions)

        assert result.total_functions == 3
        assert result.is_done
        assert names_in_batch_prompt(prompt_of(echo_batch.call_args)) == [
            "同步第1批次资源", "同步第3批次资源", "同步第5批次资源",
        ]

    @pytest.mark.asyncio
    async def test_previous_records_merged_without_duplicates(self, chat_client, echo_batch, make_table):
        previous = parse_table(make_table(["同步第1批次资源", "手工录入站点"]))

        result = await BatchSplitter(chat_client, batch_size=3).split(_functions(3), previous, 0)

        names = [r.functional_process for r in result.records if r.functional_process]
        assert names == ["同步第1批次资源", "手工录入站点", "同步第2批次资源", "同步第3批次资源"]
        assert len(result.new_records) == 8

    @pytest.mark.asyncio
    async def test_provider_failure_raises(self, chat_client, mock_acompletion):
        mock_acompletion.side_effect = Exception("503 Service Unavailable")
        with pytest.raises(ExhaustedAllModelsError):
            await BatchSplitter(chat_client).split(_functions(3))


# =============================================================================
# Omissions and split_all
# =============================================================================


class TestOmissions:
    """Tests for missed-function reporting and the supplemental pass."""

    @pytest.mark.asyncio
    async def test_missed_functions_reported(self, chat_client, lossy_batch):
        result = await BatchSplitter(chat_client).split(_functions(23), [], 0)
        assert [f.name for f in result.missed_functions] == ["同步第10批次资源"]

    @pytest.mark.asyncio
    async def test_split_all_without_supplemental(self, chat_client, lossy_batch):
        result = await BatchSplitter(chat_client).split_all(_functions(23), supplemental_pass=False)

        assert result.is_done
        assert [f.name for f in result.missed_functions] == ["同步第10批次资源", "同步第20批次资源"]
        assert lossy_batch.call_count == 3

    @pytest.mark.asyncio
    async def test_supplemental_pass_recovers(self, chat_client, lossy_batch):
        result = await BatchSplitter(chat_client).split_all(_functions(23))

        assert result.missed_functions == []
        assert lossy_batch.call_count == 4
        names = {r.functional_process for r in result.records if r.functional_process}
        assert names == {f"同步第{i}批次资源" for i in range(1, 24)}
        assert len(result.new_records) == 23 * 4

    @pytest.mark.asyncio
    async def test_supplemental_pass_is_one_batch(self, chat_client, lossy_batch, names_in_batch_prompt, prompt_of):
        result = await BatchSplitter(chat_client, batch_size=4).split_all(_functions(20))

        assert lossy_batch.call_count == 6
        retried = names_in_batch_prompt(prompt_of(lossy_batch.call_args))
        assert retried == [f"同步第{i}批次资源" for i in (4, 8, 12, 16, 20)]
        assert [f.name for f in result.missed_functions] == ["同步第20批次资源"]

    @pytest.mark.asyncio
    async def test_service_operation(self, chat_client, echo_batch):
        result = await split_confirmed_functions(_functions(12), client=chat_client)
        assert result.next_processed_index == 10
        assert not result.is_done
