import pytest

from llm.bottle_oracle import BottleOracle
from llm.llm_factory import call_with_retries
from llm.qwen_llm import QwenLLM
from prompts.bottle_prompts import get_bottle_mood_prompt, get_bottle_picker_prompt
from services.errors import UpstreamError


class RecordingLLM:
    def __init__(self, reply):
        self.reply = reply
        self.messages = []

    def _call(self, messages):
        self.messages.append(messages)
        return self.reply


def test_call_with_retries_recovers():
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("断线")
        return "ok"

    assert call_with_retries(flaky, "测试服务", max_retries=2, backoff_seconds=0) == "ok"
    assert len(attempts) == 3


def test_call_with_retries_gives_up():
    attempts = []

    def broken():
        attempts.append(1)
        raise TimeoutError("超时")

    with pytest.raises(UpstreamError):
        call_with_retries(broken, "测试服务", max_retries=1, backoff_seconds=0)
    assert len(attempts) == 2


def test_oracle_pick_sends_numbered_candidates():
    llm = RecordingLLM(" 2 \n")
    oracle = BottleOracle(llm)

    reply = oracle.pick("今天有点难过", [
        {"id": 7, "name": "晴天", "mood": "明亮"},
        {"id": 3, "name": "雨夜", "mood": "安静的陪伴"},
    ])

    assert reply == "2"
    system, human = llm.messages[0]
    assert system.type == "system"
    assert '2. [ID: 3] "雨夜" - 心情: 安静的陪伴' in human.content


def test_oracle_rejects_empty_reply_and_empty_candidates():
    oracle = BottleOracle(RecordingLLM("   "))
    with pytest.raises(UpstreamError):
        oracle.generate_mood_query("日记")
    with pytest.raises(ValueError):
        oracle.pick("日记", [])


def test_bottle_mood_prompt_describes_blocks():
    prompt = get_bottle_mood_prompt({"blocks": [
        {"type": "text", "content": "记得按时吃饭"},
        {"type": "image", "url": "/media/1", "caption": "海边日落"},
        {"type": "voice", "url": "/media/2"},
    ]}, description="给刚搬家的朋友")

    assert "记得按时吃饭" in prompt
    assert "[image] 海边日落" in prompt
    assert "[voice]" in prompt
    assert prompt.endswith("补充说明：给刚搬家的朋友")


def test_picker_prompt_states_range():
    prompt = get_bottle_picker_prompt("日记", [{"id": 1, "name": "a", "mood": "b"}])
    assert "1-1" in prompt


def test_qwen_llm_parses_reply(monkeypatch):
    llm = QwenLLM(api_key="test-key", max_retries=0)
    sent = []

    def fake_request(messages):
        sent.append(messages)
        return {"output": {"text": "3"}}

    monkeypatch.setattr(llm, "_make_request", fake_request)
    assert BottleOracle(llm).pick("日记", [{"id": 1, "name": "a", "mood": "b"}]) == "3"
    assert [m["role"] for m in sent[0]] == ["system", "user"]


def test_qwen_llm_bad_payload_is_upstream_error(monkeypatch):
    llm = QwenLLM(api_key="test-key", max_retries=0)
    monkeypatch.setattr(llm, "_make_request", lambda messages: {"unexpected": True})
    with pytest.raises(UpstreamError):
        llm._call([])
