import json
from types import SimpleNamespace

import httpx
import pytest

from riskvision.config import settings
from riskvision.models.generation import GenerateRiskParams
from riskvision.services import llm
from riskvision.services.prompts import build_risks_prompt, format_team_members

TEAM = [
    SimpleNamespace(email="lead@example.com", display_name="Lead", job_title="PM", project_role="Owner"),
    SimpleNamespace(email="dev@example.com", display_name="Dev", job_title=None, project_role=None),
]

RISK = SimpleNamespace(
    title="Vendor delay",
    description="Parts arrive late",
    category="schedule",
    probability=7,
    impact=9,
    assigned_to="",
)


def _chat_reply(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _client(handler, provider: str = "openai", model: str = "gpt-test") -> llm.LLMClient:
    config = llm.LLMConfig(provider=provider, api_key="sk-test", model=model)
    return llm.LLMClient(config, transport=httpx.MockTransport(handler))


# ── Extraction ────────────────────────────────────────────────


def test_extract_json_array_from_chatty_reply():
    text = 'Sure! Here are the risks:\n```json\n[{"title": "A"}, {"title": "B"}]\n```\nGood luck.'
    assert [r["title"] for r in llm.extract_json_array(text)] == ["A", "B"]


def test_extract_json_object_and_string_array():
    assert llm.extract_json_object('Strategy: {"overview": "x"} done')["overview"] == "x"
    assert llm.extract_string_array('Solutions:\n["One", " Two ", ""]') == ["One", "Two"]


@pytest.mark.parametrize(
    ("func", "text"),
    [
        (llm.extract_json_array, "no json here"),
        (llm.extract_json_array, '[{"title": "A",}]'),
        (llm.extract_json_object, "nothing"),
        (llm.extract_string_array, "[1, 2]"),
    ],
)
def test_extraction_failures_raise_response_error(func, text):
    with pytest.raises(llm.LLMResponseError):
        func(text)


def test_coerce_generated_risk():
    raw = {
        "title": "Data loss",
        "description": "Backups untested",
        "category": "Nonsense",
        "probability": "12",
        "impact": None,
        "assignedTo": "DEV@example.com",
        "potentialSolutions": "Test restores",
    }
    risk = llm.coerce_generated_risk(raw, {"dev@example.com"})
    assert risk["category"] == "technical"
    assert risk["probability"] == 10
    assert risk["impact"] == 5
    assert risk["assigned_to"] == "dev@example.com"
    assert risk["potential_solutions"] == ["Test restores"]

    outsider = llm.coerce_generated_risk({**raw, "assignedTo": "someone@else.com"}, {"dev@example.com"})
    assert outsider["assigned_to"] == ""


# ── Config resolution ─────────────────────────────────────────


def test_user_key_overrides_server_default(monkeypatch):
    monkeypatch.setattr(settings, "llm_api_key", "server-key")
    user = SimpleNamespace(ai_provider="groq", ai_api_key="user-key", ai_model=None)
    config = llm.LLMConfig.resolve(user)
    assert config.provider == "groq"
    assert config.api_key == "user-key"
    assert config.model == llm.PROVIDERS["groq"].default_model

    fallback = llm.LLMConfig.resolve(SimpleNamespace(ai_provider="groq", ai_api_key=None, ai_model=None))
    assert fallback.api_key == "server-key"


def test_missing_key_is_a_config_error(monkeypatch):
    monkeypatch.setattr(settings, "llm_api_key", "")
    with pytest.raises(llm.LLMConfigError):
        llm.LLMConfig.resolve(None)


def test_unknown_provider_is_rejected():
    with pytest.raises(llm.LLMConfigError):
        llm.LLMClient(llm.LLMConfig(provider="skynet", api_key="k", model="m"))


# ── HTTP calls ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_chat_completions_request_shape():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_chat_reply("hello"))

    assert await _client(handler).complete("ping") == "hello"
    assert seen["url"] == "https://api.openai.com/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-test"
    assert seen["body"]["messages"] == [{"role": "user", "content": "ping"}]


@pytest.mark.asyncio
async def test_gemini_request_shape():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.url.params["key"]
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "hi "}, {"text": "there"}]}}]})

    client = _client(handler, provider="gemini", model="gemini-1.5-flash")
    assert await client.complete("ping") == "hi there"
    assert seen["path"] == "/v1beta/models/gemini-1.5-flash:generateContent"
    assert seen["key"] == "sk-test"


@pytest.mark.asyncio
async def test_http_error_status_raises_request_error():
    client = _client(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(llm.LLMRequestError, match="status 500"):
        await client.complete("ping")


@pytest.mark.asyncio
async def test_transport_failure_raises_request_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(llm.LLMRequestError):
        await _client(handler).complete("ping")


# ── Generators ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_generate_risks_trims_to_count_and_coerces():
    reply = json.dumps(
        [
            {"title": f"Risk {i}", "description": "d", "category": "legal", "probability": 3, "impact": 4,
             "assignedTo": "lead@example.com"}
            for i in range(5)
        ]
    )
    client = _client(lambda request: httpx.Response(200, json=_chat_reply(reply)))
    params = GenerateRiskParams(industry="Energy", project_type="Wind farm", count=3)

    risks = await llm.generate_risks(client, params, TEAM)
    assert [r["title"] for r in risks] == ["Risk 0", "Risk 1", "Risk 2"]
    assert all(r["assigned_to"] == "lead@example.com" for r in risks)


@pytest.mark.asyncio
async def test_generate_mitigation_and_solutions():
    replies = iter(
        [
            'Plan: {"overview": "Add buffer", "successMetrics": "On-time delivery", "timeline": "Q1"}',
            '["Second supplier", "Safety stock"]',
        ]
    )
    client = _client(lambda request: httpx.Response(200, json=_chat_reply(next(replies))))

    strategy = await llm.generate_mitigation_strategy(client, RISK, TEAM)
    assert strategy.overview == "Add buffer"
    assert strategy.success_metrics == ["On-time delivery"]
    assert strategy.timeline[0].phase == "Q1"
    assert strategy.responsible_roles == []

    assert await llm.generate_solutions(client, RISK) == ["Second supplier", "Safety stock"]


def test_prompts_include_team_and_context():
    params = GenerateRiskParams(industry="Energy", project_type="Wind farm", count=4, country="Norway")
    prompt = build_risks_prompt(params, TEAM, ["technical", "legal"])
    assert "Generate 4 potential project risks for a Wind farm project in the Energy industry." in prompt
    assert "Country/Region: Norway" in prompt
    assert "Budget: Not specified" in prompt
    assert "lead@example.com" in prompt
    assert "One of: technical, legal" in prompt

    team_text = format_team_members(TEAM)
    assert "- Dev <dev@example.com> (Not specified)" in team_text
    assert format_team_members([]) == ""
