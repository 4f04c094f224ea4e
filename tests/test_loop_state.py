import unittest

from agent.state import Done, Executing, Requesting, advance
from agent.stream import ToolInvocation


class LoopStateTests(unittest.TestCase):
    def setUp(self):
        self.call = ToolInvocation(id="toolu_1", name="get_day_details", input={"dayNumber": 1})

    def test_final_answer_finishes_loop(self):
        state = advance(Requesting(iteration=3), invocations=[])
        self.assertEqual(state, Done(iterations=3, hit_limit=False))

    def test_tool_calls_move_to_executing(self):
        state = advance(Requesting(iteration=1), invocations=[self.call])
        self.assertEqual(state, Executing(iteration=1, invocations=(self.call,)))

    def test_executing_requests_next_iteration(self):
        state = advance(Executing(iteration=1, invocations=(self.call,)), max_iterations=12)
        self.assertEqual(state, Requesting(iteration=2))

    def test_ceiling_stops_the_loop(self):
        state = advance(Executing(iteration=12, invocations=(self.call,)), max_iterations=12)
        self.assertEqual(state, Done(iterations=12, hit_limit=True))

    def test_done_is_terminal(self):
        done = Done(iterations=2)
        self.assertIs(advance(done, invocations=[self.call]), done)

    def test_loop_always_terminates_within_ceiling(self):
        state = Requesting()
        requests = 0
        while not isinstance(state, Done):
            if isinstance(state, Requesting):
                requests += 1
                state = advance(state, invocations=[self.call], max_iterations=4)
            else:
                state = advance(state, max_iterations=4)

        self.assertEqual(requests, 4)
        self.assertTrue(state.hit_limit)


if __name__ == "__main__":
    unittest.main()
