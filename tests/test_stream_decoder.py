import unittest
from types import SimpleNamespace

from agent.errors import ProviderStreamError
from agent.stream import StreamDecoder, TextDelta, ToolInvocation, decode_stream
from tests.helpers import EventStream, provider_turn, text_events, tool_events


class StreamDecoderTests(unittest.IsolatedAsyncioTestCase):
    async def test_text_and_tool_calls_decode_in_order(self):
        events = provider_turn(
            text_events(0, "Let me check day 1."),
            tool_events(1, "toolu_1", "get_day_details", {"dayNumber": 1}),
            stop_reason="tool_use",
        )
        decoder = StreamDecoder()

        decoded = [item async for item in decode_stream(EventStream(events), decoder)]

        text = "".join(d.text for d in decoded if isinstance(d, TextDelta))
        tools = [d for d in decoded if isinstance(d, ToolInvocation)]
        self.assertEqual(text, "Let me check day 1.")
        self.assertEqual(tools, [ToolInvocation(id="toolu_1", name="get_day_details", input={"dayNumber": 1})])
        self.assertIsInstance(decoded[-1], ToolInvocation)
        self.assertEqual(decoder.stop_reason, "tool_use")
        self.assertTrue(decoder.finished)

    def test_tool_input_is_only_emitted_on_block_stop(self):
        decoder = StreamDecoder()
        events = tool_events(0, "toolu_1", "get_saved_ideas", {"foo": "bar"})

        self.assertEqual(decoder.feed(events[0]), [])
        self.assertEqual(decoder.feed(events[1]), [])
        self.assertEqual(decoder.feed(events[2]), [])
        result = decoder.feed(events[3])

        self.assertEqual(result, [ToolInvocation(id="toolu_1", name="get_saved_ideas", input={"foo": "bar"})])

    def test_empty_input_becomes_empty_object(self):
        decoder = StreamDecoder()
        for event in tool_events(0, "toolu_1", "get_saved_ideas", raw="")[:-1]:
            decoder.feed(event)

        result = decoder.feed({"type": "content_block_stop", "index": 0})

        self.assertEqual(result[0].input, {})

    def test_unparseable_input_drops_only_that_invocation(self):
        decoder = StreamDecoder()
        decoded = []
        events = provider_turn(
            tool_events(0, "toolu_bad", "add_activity_to_day", raw='{"dayNumber": 1,'),
            tool_events(1, "toolu_ok", "get_day_details", {"dayNumber": 2}),
        )
        for event in events:
            decoded.extend(decoder.feed(event))

        self.assertEqual([d.id for d in decoded], ["toolu_ok"])
        self.assertEqual(decoder.dropped, ["toolu_bad"])

    def test_non_object_input_is_dropped(self):
        decoder = StreamDecoder()
        decoded = []
        for event in tool_events(0, "toolu_list", "get_day_details", raw="[1, 2]"):
            decoded.extend(decoder.feed(event))

        self.assertEqual(decoded, [])
        self.assertEqual(decoder.dropped, ["toolu_list"])

    def test_accepts_sdk_style_objects(self):
        decoder = StreamDecoder()
        event = SimpleNamespace(
            type="content_block_delta",
            index=0,
            delta=SimpleNamespace(type="text_delta", text="Hola"),
        )

        self.assertEqual(decoder.feed(event), [TextDelta("Hola")])

    def test_error_event_raises(self):
        decoder = StreamDecoder()
        with self.assertRaises(ProviderStreamError):
            decoder.feed({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})

    def test_events_after_message_stop_are_ignored(self):
        decoder = StreamDecoder()
        decoder.feed({"type": "message_stop"})

        result = decoder.feed(
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "late"}}
        )

        self.assertEqual(result, [])


if __name__ == "__main__":
    unittest.main()
