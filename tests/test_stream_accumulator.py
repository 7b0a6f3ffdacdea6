"""
Tests for the stream accumulator.
"""

import pytest

from tgo.chat.streaming.accumulator import StreamAccumulator
from tgo.chat.streaming.fragments import ReasoningDelta, TextDelta, ToolCallDelta


class TestTextAccumulation:
    """Answer and reasoning text."""

    def test_text_is_appended_and_forwarded(self):
        forwarded = []
        accumulator = StreamAccumulator(on_text=lambda message_id, text: forwarded.append((message_id, text)))

        for piece in ["Hel", "lo", " world"]:
            accumulator.on_fragment(TextDelta(piece))

        assert accumulator.text == "Hello world"
        assert [text for _, text in forwarded] == ["Hel", "lo", " world"]
        assert len({message_id for message_id, _ in forwarded}) == 1
        assert accumulator.text_message_id == forwarded[0][0]

    def test_empty_text_does_not_allocate_message_id(self):
        forwarded = []
        accumulator = StreamAccumulator(on_text=lambda message_id, text: forwarded.append(text))

        accumulator.on_fragment(TextDelta(""))

        assert accumulator.text_message_id is None
        assert forwarded == []

    def test_reasoning_uses_its_own_message_id(self):
        text_ids, reasoning_ids = [], []
        accumulator = StreamAccumulator(
            on_text=lambda message_id, text: text_ids.append(message_id),
            on_reasoning=lambda message_id, text: reasoning_ids.append(message_id),
        )

        accumulator.on_fragment(ReasoningDelta("thinking "))
        accumulator.on_fragment(ReasoningDelta("hard"))
        accumulator.on_fragment(TextDelta("answer"))
        response = accumulator.finalize()

        assert response.reasoning == "thinking hard"
        assert response.text == "answer"
        assert len(set(reasoning_ids)) == 1
        assert set(reasoning_ids).isdisjoint(text_ids)

    def test_unknown_fragment_type_is_rejected(self):
        accumulator = StreamAccumulator()

        with pytest.raises(TypeError):
            accumulator.on_fragment("plain string")


class TestToolCallAccumulation:
    """Index-addressed tool call deltas."""

    def test_interleaved_deltas_are_reassembled_by_index(self):
        accumulator = StreamAccumulator()
        fragments = [
            ToolCallDelta(index=1, id="call_b", name="write_", arguments='{"path": '),
            ToolCallDelta(index=0, id="call_a", name="read_file", arguments='{"pa'),
            ToolCallDelta(index=1, name="file", arguments='"b.txt", "content": "x"}'),
            ToolCallDelta(index=0, arguments='th": "a.txt"}'),
        ]
        for fragment in fragments:
            accumulator.on_fragment(fragment)

        response = accumulator.finalize()

        assert [call.index for call in response.tool_calls] == [0, 1]
        first, second = response.tool_calls
        assert (first.id, first.name) == ("call_a", "read_file")
        assert first.parsed_arguments() == {"path": "a.txt"}
        assert (second.id, second.name) == ("call_b", "write_file")
        assert second.parsed_arguments() == {"path": "b.txt", "content": "x"}

    def test_id_is_kept_from_first_sight(self):
        accumulator = StreamAccumulator()
        accumulator.on_fragment(ToolCallDelta(index=0, id="first", name="echo", arguments="{}"))
        accumulator.on_fragment(ToolCallDelta(index=0, id="second"))

        assert accumulator.finalize().tool_calls[0].id == "first"

    def test_missing_id_gets_index_based_id(self):
        accumulator = StreamAccumulator()
        accumulator.on_fragment(ToolCallDelta(index=3, name="echo", arguments="{}"))

        assert accumulator.finalize().tool_calls[0].id == "call_3"

    def test_drafts_only_grow(self):
        accumulator = StreamAccumulator()
        accumulator.on_fragment(ToolCallDelta(index=0, name="ec"))
        accumulator.on_fragment(ToolCallDelta(index=0))
        accumulator.on_fragment(ToolCallDelta(index=0, name="ho"))

        assert [draft.name for draft in accumulator.drafts] == ["echo"]

    @pytest.mark.parametrize("delta", [
        ToolCallDelta(index=0, arguments='{"a": 1}'),
        ToolCallDelta(index=0, name="echo"),
        ToolCallDelta(index=0, name="echo", arguments='{"a": '),
        ToolCallDelta(index=0, name="echo", arguments="[1, 2]"),
    ])
    def test_malformed_calls_are_dropped(self, delta):
        accumulator = StreamAccumulator()
        accumulator.on_fragment(delta)
        accumulator.on_fragment(ToolCallDelta(index=1, id="ok", name="echo", arguments="{}"))

        response = accumulator.finalize()

        assert [call.id for call in response.tool_calls] == ["ok"]
        assert [draft.index for draft in response.malformed] == [0]


class TestFinalize:
    """Finalization rules."""

    def test_finalize_twice_raises(self):
        accumulator = StreamAccumulator()
        accumulator.finalize()

        with pytest.raises(RuntimeError):
            accumulator.finalize()

    def test_fragments_after_finalize_raise(self):
        accumulator = StreamAccumulator()
        accumulator.finalize()

        with pytest.raises(RuntimeError):
            accumulator.on_fragment(TextDelta("late"))

    def test_response_without_tool_calls(self):
        accumulator = StreamAccumulator()
        accumulator.on_fragment(TextDelta("plain answer"))

        response = accumulator.finalize()

        assert not response.has_tool_calls
        assert response.text == "plain answer"
        assert accumulator.fragment_count == 1
