"""Tests for NEW / UPDATE / SKIP turn classification."""

from dataclasses import replace

import pytest

from classifier import (
    TRANSCRIPT_LINE_MAX_CHARS,
    NewAction,
    NewReply,
    SkipAction,
    SkipReply,
    UnparseableReply,
    UpdateAction,
    UpdateReply,
    build_transcript,
    classify_turn,
    parse_classifier_response,
    parse_dedup_response,
)
from config import Config
from formatting import format_sliding_context
from llm import GenerationError
from models import ContextEntry, ScoredEntry

CONFIG = Config(summarization_mode="llm")

TURN = [
    {"role": "user", "content": "Can you check why the nightly backup job failed?"},
    {
        "role": "assistant",
        "content": "",
        "tool_calls": [{"function": {"name": "read_logs"}}],
    },
    {"role": "tool", "name": "read_logs", "content": "disk full"},
    {"role": "assistant", "content": "The backup disk was full, so I pruned old snapshots."},
]


def reference(entry_id: str, summary: str) -> ContextEntry:
    return ContextEntry(
        id=entry_id,
        summary=summary,
        vector=[1.0, 0.0, 0.0, 0.0],
        session_key="telegram:main:abc",
        session_type="dm",
        timestamp=1_750_000_000_000,
    )


@pytest.fixture
def references():
    return [
        reference("ref-1", "Looked at the backup job"),
        reference("ref-2", "Discussed snapshot retention policy"),
        reference("ref-3", "Set up weekly report email"),
    ]


class TestParseClassifierResponse:
    def test_skip(self):
        assert parse_classifier_response("  SKIP \n") == SkipReply()

    def test_skip_case_insensitive(self):
        assert parse_classifier_response("skip") == SkipReply()

    def test_update(self):
        assert parse_classifier_response("UPDATE [2]: merged text") == UpdateReply(index=2, summary="merged text")

    def test_update_multiline_summary(self):
        reply = parse_classifier_response("UPDATE [1]:\nfirst line\nsecond line")
        assert reply == UpdateReply(index=1, summary="first line\nsecond line")

    def test_new(self):
        assert parse_classifier_response("NEW: fresh topic") == NewReply(summary="fresh topic")

    def test_unparseable(self):
        assert parse_classifier_response("banana") == UnparseableReply(raw="banana")

    def test_skip_with_trailing_text_is_not_skip(self):
        assert isinstance(parse_classifier_response("SKIP because it repeats"), UnparseableReply)


class TestParseDedupResponse:
    def test_skip_action(self, references):
        assert parse_dedup_response("SKIP", references) == SkipAction()

    def test_update_targets_reference(self, references):
        action = parse_dedup_response("UPDATE [2]: merged text", references)
        assert action == UpdateAction(summary="merged text", replace_id="ref-2")

    def test_out_of_range_update_degrades_to_new(self, references):
        assert parse_dedup_response("UPDATE [9]: text", references) == NewAction(summary="text")

    def test_zero_index_degrades_to_new(self, references):
        assert parse_dedup_response("UPDATE [0]: long enough summary", references) == NewAction(
            summary="long enough summary"
        )

    def test_short_update_degrades_to_new(self, references):
        assert parse_dedup_response("UPDATE [1]: tiny", references) == NewAction(summary="tiny")

    def test_unparseable_becomes_new(self, references):
        assert parse_dedup_response("banana", references) == NewAction(summary="banana")

    def test_new_action(self, references):
        assert parse_dedup_response("NEW: a new thing happened", references) == NewAction(
            summary="a new thing happened"
        )


class TestBuildTranscript:
    def test_only_last_interaction(self):
        messages = [
            {"role": "user", "content": "old question"},
            {"role": "assistant", "content": "old answer"},
            *TURN,
        ]
        transcript = build_transcript(messages)
        assert "old question" not in transcript
        assert transcript.startswith("User: Can you check")
        assert "[Assistant called: read_logs]" in transcript
        assert "[Tool result: read_logs]" in transcript
        assert transcript.endswith("pruned old snapshots.")

    def test_no_user_message(self):
        assert build_transcript([{"role": "assistant", "content": "hello"}]) == ""

    def test_respects_max_chars(self):
        messages = [
            {"role": "user", "content": "x" * 1000},
            {"role": "assistant", "content": "y" * 1000},
        ]
        assert len(build_transcript(messages, max_chars=500)) <= 500

    def test_text_blocks(self):
        messages = [{"role": "user", "content": [{"type": "text", "text": "block question"}]}]
        assert build_transcript(messages) == "User: block question"


class TestClassifyTurn:
    def test_update_against_references(self, references):
        prompts = []

        def fake_generate(prompt):
            prompts.append(prompt)
            return "UPDATE [1]: I found the backup disk full and pruned old snapshots."

        action = classify_turn(TURN, references, CONFIG, generate_fn=fake_generate)
        assert action == UpdateAction(
            summary="I found the backup disk full and pruned old snapshots.",
            replace_id="ref-1",
        )
        assert "[1] Looked at the backup job" in prompts[0]
        assert "<transcript>" in prompts[0]

    def test_skip(self, references):
        assert classify_turn(TURN, references, CONFIG, generate_fn=lambda p: "SKIP") == SkipAction()

    def test_no_references_is_always_new(self):
        action = classify_turn(TURN, [], CONFIG, generate_fn=lambda p: "The backup disk was full.")
        assert action == NewAction(summary="The backup disk was full.")

    def test_no_references_omits_dedup_instructions(self):
        prompts = []

        def fake_generate(prompt):
            prompts.append(prompt)
            return "The backup disk was full."

        classify_turn(TURN, [], CONFIG, generate_fn=fake_generate)
        assert "UPDATE [N]" not in prompts[0]

    def test_generation_failure_falls_back_to_rule_based(self, references):
        def failing(prompt):
            raise GenerationError("quota exceeded")

        action = classify_turn(TURN, references, CONFIG, generate_fn=failing)
        assert isinstance(action, NewAction)
        assert "nightly backup job" in action.summary
        assert "read_logs" in action.summary

    def test_empty_response_falls_back_to_rule_based(self, references):
        action = classify_turn(TURN, references, CONFIG, generate_fn=lambda p: " ")
        assert isinstance(action, NewAction)
        assert "nightly backup job" in action.summary

    def test_short_transcript_skips_generation(self, references):
        calls = []
        messages = [{"role": "user", "content": "hi"}]
        action = classify_turn(messages, references, CONFIG, generate_fn=lambda p: calls.append(p) or "SKIP")
        assert calls == []
        assert isinstance(action, NewAction)

    def test_injected_context_only_is_skipped(self, references):
        messages = [
            {
                "role": "user",
                "content": '<sliding-context window="168h" entries="1">\n[1h ago · DM] something\n</sliding-context>',
            },
        ]
        assert classify_turn(messages, references, CONFIG, generate_fn=lambda p: "NEW: x" * 5) == SkipAction()

    def injected_block(self):
        now = 1_750_000_000_000
        summaries = [
            "I helped the user migrate the nightly backup job to the new storage bucket and verified the first run.",
            "We decided to keep weekly snapshot retention at four weeks after comparing storage costs in detail.",
            "The user asked me to draft the quarterly infrastructure report, and I outlined the cost section first.",
            "I reviewed the CI pipeline failures and traced them to an expired deploy token on the staging runner.",
        ]
        entries = [
            ScoredEntry(replace(reference(f"ref-{i}", summary), timestamp=now - i * 3_600_000), 0.5)
            for i, summary in enumerate(summaries)
        ]
        block = format_sliding_context(entries, [], max_tokens=1500, window_hours=168, now=now)
        assert len(block) > TRANSCRIPT_LINE_MAX_CHARS
        return block

    def test_long_injected_context_is_skipped(self, references):
        calls = []
        messages = [{"role": "user", "content": self.injected_block()}]
        action = classify_turn(messages, references, CONFIG, generate_fn=lambda p: calls.append(p) or "NEW: echo")
        assert action == SkipAction()
        assert calls == []

    def test_injected_context_removed_from_prompt(self, references):
        prompts = []

        def fake_generate(prompt):
            prompts.append(prompt)
            return "NEW: I explained how to restore a single file from the backup."

        messages = [
            {"role": "user", "content": f"{self.injected_block()}\n\nHow do I restore a single file from the backup?"},
            {"role": "assistant", "content": "Use the restore command with the file path and snapshot id."},
        ]
        action = classify_turn(messages, references, CONFIG, generate_fn=fake_generate)
        assert action == NewAction(summary="I explained how to restore a single file from the backup.")
        assert "<sliding-context" not in prompts[0]
        assert "User: How do I restore a single file" in prompts[0]

    def test_german_prompt(self, references):
        prompts = []
        config = Config(summarization_mode="llm", locale="de")

        def fake_generate(prompt):
            prompts.append(prompt)
            return "SKIP"

        classify_turn(TURN, references, config, generate_fn=fake_generate)
        assert "ICH-Perspektive" in prompts[0]
