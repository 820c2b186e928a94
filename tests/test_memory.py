"""Tests for per-sender conversation memory."""

import json

import pytest

from wachat.services.memory import ConversationMemory


def _prompt(name):
    return f"You are talking to {name}"


class TestConversationMemory:
    def test_new_transcript_starts_with_system_prompt(self, tmp_path):
        memory = ConversationMemory(tmp_path, _prompt)
        transcript = memory.get("a@s.whatsapp.net", "Ali")
        assert transcript == [{"role": "system", "content": "You are talking to Ali"}]

    def test_window_is_bounded_and_keeps_system_prompt(self, tmp_path):
        memory = ConversationMemory(tmp_path, _prompt, max_length=5)
        for i in range(20):
            role = "user" if i % 2 == 0 else "assistant"
            transcript = memory.append("a@s.whatsapp.net", role, f"turn {i}")
            assert len(transcript) <= 5
            assert transcript[0]["role"] == "system"
        assert transcript[-1]["content"] == "turn 19"

    def test_trim_drops_oldest_pair(self, tmp_path):
        memory = ConversationMemory(tmp_path, _prompt, max_length=3)
        memory.append("a", "user", "q1")
        memory.append("a", "assistant", "a1")
        transcript = memory.append("a", "user", "q2")
        assert [m["content"] for m in transcript[1:]] == ["q2"]

    def test_rejects_tiny_window(self, tmp_path):
        with pytest.raises(ValueError):
            ConversationMemory(tmp_path, _prompt, max_length=2)

    def test_save_and_reload(self, tmp_path):
        memory = ConversationMemory(tmp_path, _prompt)
        memory.append("a@s.whatsapp.net", "user", "hello")
        memory.save("a@s.whatsapp.net")

        fresh = ConversationMemory(tmp_path, _prompt)
        transcript = fresh.get("a@s.whatsapp.net")
        assert transcript[-1] == {"role": "user", "content": "hello"}
        assert fresh.count_histories() == 1

    def test_history_file_name_is_safe(self, tmp_path):
        memory = ConversationMemory(tmp_path, _prompt)
        assert memory.history_path("92300:1@s.whatsapp.net").name == "history_92300_1_s_whatsapp_net.json"

    def test_invalid_file_starts_fresh(self, tmp_path):
        memory = ConversationMemory(tmp_path, _prompt)
        memory.history_path("a").write_text(json.dumps({"not": "a list"}))
        assert memory.get("a", "Sara")[0]["content"] == "You are talking to Sara"

    def test_corrupt_file_starts_fresh(self, tmp_path):
        memory = ConversationMemory(tmp_path, _prompt)
        memory.history_path("a").write_text("{broken")
        assert len(memory.get("a")) == 1

    def test_reset_forgets_everything(self, tmp_path):
        memory = ConversationMemory(tmp_path, _prompt)
        memory.append("a", "user", "remember me")
        memory.save("a")
        memory.reset("a")
        assert not memory.history_path("a").exists()
        assert len(memory.get("a")) == 1

    def test_reset_without_history(self, tmp_path):
        ConversationMemory(tmp_path, _prompt).reset("nobody")
