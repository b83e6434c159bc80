"""Pytest configuration and shared fixtures.

Provides reusable test fixtures for:
- Fake provider configurations (no real keys)
- Mock litellm responses, chat and text-completion shaped
- Markdown decomposition tables
- Sample documents
"""

import itertools
import re
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cosmic_extractor.core.cost_tracker import CostTracker
from cosmic_extractor.core.llm_client import ProviderClient
from cosmic_extractor.core.pipeline_logger import reset_logger
from cosmic_extractor.core.provider_registry import ClientRegistry, ProviderConfig, ProviderKind
from cosmic_extractor.core.retry_policy import RetryPolicy
from cosmic_extractor.pydantic_models.records import TABLE_HEADER, TABLE_SEPARATOR


# =============================================================================
# Table builders
# =============================================================================


def build_table(names: list[str], header: bool = True) -> str:
    """A well-formed four-row group per name."""
    lines = [TABLE_HEADER, TABLE_SEPARATOR] if header else []
    for name in names:
        lines.extend([
            f"|发起者：用户 接收者：用户|用户触发|{name}|接收{name}请求|E|{name}请求|请求编号、操作人、请求时间|",
            f"||||读取{name}信息|R|{name}信息表|记录编号、记录内容、更新时间|",
            f"||||保存{name}日志|W|{name}日志表|日志编号、操作人、操作时间|",
            f"||||返回{name}结果|X|{name}响应|结果状态、结果消息、处理耗时|",
        ])
    return "\n".join(lines)


_BATCH_NAME = re.compile(r"^\d+\. \*\*(.+?)\*\*", re.MULTILINE)


def batch_names(prompt: str) -> list[str]:
    """Function names listed in a batch prompt."""
    return _BATCH_NAME.findall(prompt)


# =============================================================================
# Mock litellm responses
# =============================================================================


def chat_response(text: str, prompt_tokens: int = 100, completion_tokens: int = 50) -> MagicMock:
    return MagicMock(
        choices=[MagicMock(message=MagicMock(content=text))],
        usage=MagicMock(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def text_response(text: str, prompt_tokens: int = 100, completion_tokens: int = 50) -> MagicMock:
    return MagicMock(
        choices=[MagicMock(text=text)],
        usage=MagicMock(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def user_prompt_of(call) -> str:
    """User message of a recorded acompletion call."""
    return call.kwargs["messages"][1]["content"]


# =============================================================================
# Providers and clients
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_logger():
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def chat_provider():
    return ProviderConfig(
        provider_kind=ProviderKind.OPENAI,
        api_key="sk-test",
        model="test-model",
        fallback_models=["backup-model"],
    )


@pytest.fixture
def generative_provider():
    return ProviderConfig(
        provider_kind=ProviderKind.GEMINI,
        api_key="gm-test",
        model="gemini-test",
    )


@pytest.fixture
def registry(chat_provider):
    return ClientRegistry([chat_provider])


@pytest.fixture
def fast_policy():
    """Default attempt budget without the backoff wait."""
    return RetryPolicy(backoff_seconds=0)


@pytest.fixture
def cost_tracker():
    return CostTracker()


@pytest.fixture
def chat_client(chat_provider, fast_policy, cost_tracker):
    return ProviderClient(chat_provider, cost_tracker=cost_tracker, retry_policy=fast_policy)


@pytest.fixture
def generative_client(generative_provider, fast_policy, cost_tracker):
    return ProviderClient(generative_provider, cost_tracker=cost_tracker, retry_policy=fast_policy)


@pytest.fixture
def mock_acompletion():
    """Patch litellm.acompletion as seen by the provider client."""
    with patch("cosmic_extractor.core.llm_client.acompletion", new_callable=AsyncMock) as mock:
        mock.return_value = chat_response(build_table(["查询告警工单"]))
        yield mock


@pytest.fixture
def mock_atext_completion():
    """Patch litellm.atext_completion as seen by the provider client."""
    with patch("cosmic_extractor.core.llm_client.atext_completion", new_callable=AsyncMock) as mock:
        mock.return_value = text_response(build_table(["查询告警工单"]))
        yield mock


# =============================================================================
# Sample documents
# =============================================================================


@pytest.fixture
def sample_document():
    return """# 网优平台需求说明

## 告警管理模块
用户可以查询告警工单，导出告警统计报表，并对告警进行确认。

## 站点管理模块
用户可以新增站点、修改站点参数、删除站点。

## 定时任务
系统每天凌晨自动汇总小区性能数据，并每小时同步资源数据。
"""


@pytest.fixture
def sample_table():
    return build_table(["查询告警工单", "导出告警统计报表"])


# =============================================================================
# Helper fixtures
# =============================================================================


@pytest.fixture
def make_table():
    return build_table


@pytest.fixture
def make_chat_response():
    return chat_response


@pytest.fixture
def make_text_response():
    return text_response


@pytest.fixture
def names_in_batch_prompt():
    return batch_names


@pytest.fixture
def prompt_of():
    return user_prompt_of


@pytest.fixture
def unique_tables():
    """Factory for a side effect answering every call with never-seen names."""
    def factory(per_call: int, response=chat_response):
        counter = itertools.count(1)

        def reply(**kwargs):
            names = [f"查询第{next(counter)}号基站工单" for _ in range(per_call)]
            return response(build_table(names))

        return reply

    return factory
