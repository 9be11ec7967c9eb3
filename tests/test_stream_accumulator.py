"""Tests for reassembling streamed completion fragments."""

from sandbox_agent.graphs.stream import StreamAccumulator
from sandbox_agent.models.llm import ContentDelta, StopDelta, ToolCallDelta


class TestStreamAccumulator:
    """Tests for StreamAccumulator."""

    def test_content_concatenated_in_order(self):
        accumulator = StreamAccumulator()
        for text in ["Here ", "are ", "the files."]:
            accumulator.add(ContentDelta(text=text))

        assert accumulator.content == "Here are the files."
        assert accumulator.tool_calls() == []

    def test_no_content_is_none(self):
        accumulator = StreamAccumulator()
        accumulator.add(StopDelta(stop_reason="end_turn"))

        assert accumulator.content is None

    def test_tool_call_fragments_joined(self):
        accumulator = StreamAccumulator()
        accumulator.add(ToolCallDelta(index=1, id="toolu_1", name="file_operation"))
        accumulator.add(ToolCallDelta(index=1, arguments='{"type": "li'))
        accumulator.add(ToolCallDelta(index=1, arguments='st", "path": "/"}'))

        (tool_call,) = accumulator.tool_calls()

        assert tool_call.id == "toolu_1"
        assert tool_call.name == "file_operation"
        assert tool_call.parse_arguments() == {"type": "list", "path": "/"}

    def test_fragment_order_matters(self):
        forward = StreamAccumulator()
        backward = StreamAccumulator()
        fragments = ['{"command": ', '"ls"}']

        forward.add(ToolCallDelta(index=0, id="t", name="shell_command"))
        backward.add(ToolCallDelta(index=0, id="t", name="shell_command"))
        for fragment in fragments:
            forward.add(ToolCallDelta(index=0, arguments=fragment))
        for fragment in reversed(fragments):
            backward.add(ToolCallDelta(index=0, arguments=fragment))

        assert forward.tool_calls()[0].arguments == '{"command": "ls"}'
        assert backward.tool_calls()[0].arguments != forward.tool_calls()[0].arguments

    def test_interleaved_calls_ordered_by_index(self):
        accumulator = StreamAccumulator()
        accumulator.add(ToolCallDelta(index=2, id="second", name="terminate"))
        accumulator.add(ToolCallDelta(index=1, id="first", name="shell_command"))
        accumulator.add(ToolCallDelta(index=2, arguments='{"reason": "done"}'))
        accumulator.add(ToolCallDelta(index=1, arguments='{"command": "ls"}'))

        calls = accumulator.tool_calls()

        assert [tc.id for tc in calls] == ["first", "second"]
        assert calls[0].arguments == '{"command": "ls"}'
        assert calls[1].arguments == '{"reason": "done"}'

    def test_missing_id_gets_generated(self):
        accumulator = StreamAccumulator()
        accumulator.add(ToolCallDelta(index=0, name="terminate"))

        (tool_call,) = accumulator.tool_calls()

        assert tool_call.id.startswith("call_")

    def test_stop_records_usage(self):
        accumulator = StreamAccumulator()
        accumulator.add(StopDelta(stop_reason="tool_use", input_tokens=10, output_tokens=5))

        assert accumulator.stop_reason == "tool_use"
        assert accumulator.usage.total_tokens == 15
