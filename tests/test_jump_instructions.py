"""
Tests for jump and control flow instructions: JMP, JT, JF, CALL, RET.

Jumps take labels, literal addresses or register values. CALL pushes the
address after its own two words.
"""

import unittest
from test_assembly_framework import BaseAssemblyTestCase, AssemblyTestCase, run_assembly_test
from src.synacor.cpu import CPUState


class TestJumpInstructions(BaseAssemblyTestCase):
    """Test jump and control flow instructions."""

    def test_jmp_instruction(self):
        test_cases = [
            AssemblyTestCase(
                "jmp_forward_label",
                "SET r0, 1\nJMP end\nSET r2, 99\nend: HALT",
                {0: 1, 2: 0}
            ),
            AssemblyTestCase(
                "jmp_literal_address",
                "JMP 5\nSET r1, 99\nSET r2, 7\nHALT",  # SET r2 is at address 5
                {1: 0, 2: 7}
            ),
            AssemblyTestCase(
                "jmp_register_address",
                "SET r0, target\nJMP r0\nSET r1, 99\ntarget: SET r2, 5\nHALT",
                {1: 0, 2: 5}
            ),
        ]

        self.run_test_cases(test_cases)

    def test_jt_instruction(self):
        test_cases = [
            AssemblyTestCase(
                "jt_taken_on_nonzero",
                "SET r0, 3\nJT r0, skip\nSET r1, 99\nskip: HALT",
                {1: 0}
            ),
            AssemblyTestCase(
                "jt_not_taken_on_zero",
                "JT r0, skip\nSET r1, 99\nskip: HALT",
                {1: 99}
            ),
            AssemblyTestCase(
                "jt_countdown_loop",
                "SET r0, 3\nloop: ADD r1, r1, 1\nADD r0, r0, 32767\nJT r0, loop\nHALT",
                {0: 0, 1: 3}  # adding 32767 subtracts one
            ),
        ]

        self.run_test_cases(test_cases)

    def test_jf_instruction(self):
        test_cases = [
            AssemblyTestCase(
                "jf_taken_on_zero",
                "JF r0, skip\nSET r1, 99\nskip: HALT",
                {1: 0}
            ),
            AssemblyTestCase(
                "jf_not_taken_on_nonzero",
                "SET r0, 1\nJF r0, skip\nSET r1, 99\nskip: HALT",
                {1: 99}
            ),
            AssemblyTestCase(
                "jf_literal_condition",
                "JF 0, skip\nSET r1, 99\nskip: HALT",
                {1: 0}
            ),
        ]

        self.run_test_cases(test_cases)

    def test_call_and_ret(self):
        test_cases = [
            AssemblyTestCase(
                "call_returns_after_call",
                "CALL sub\nSET r1, 2\nHALT\nsub: SET r0, 1\nRET",
                {0: 1, 1: 2}
            ),
            AssemblyTestCase(
                "call_register_target",
                "SET r7, sub\nCALL r7\nADD r1, r0, 1\nHALT\nsub: SET r0, 41\nRET",
                {0: 41, 1: 42}
            ),
            AssemblyTestCase(
                "nested_calls",
                "CALL outer\nHALT\n"
                "outer: CALL inner\nADD r0, r0, 10\nRET\n"
                "inner: ADD r0, r0, 1\nRET",
                {0: 11}
            ),
            AssemblyTestCase(
                "recursive_countdown",
                "SET r0, 5\nCALL count\nHALT\n"
                "count: JF r0, done\nADD r0, r0, 32767\nADD r1, r1, 2\nCALL count\ndone: RET",
                {0: 0, 1: 10}
            ),
        ]

        self.run_test_cases(test_cases)

    def test_call_pushes_return_address(self):
        results = run_assembly_test(AssemblyTestCase(
            "call_stack_contents",
            "NOOP\nCALL sub\nHALT\nsub: HALT",
            {}
        ))

        self.assertTrue(results['success'], results['errors'])
        self.assertEqual(results['stack'], [3])

    def test_ret_on_empty_stack_halts(self):
        results = run_assembly_test(AssemblyTestCase(
            "ret_empty_stack",
            "SET r0, 1\nRET\nSET r0, 2\nHALT",
            {0: 1}
        ))

        self.assertTrue(results['success'], results['errors'])
        self.assertEqual(results['cpu_state'], CPUState.HALTED)
        self.assertIsNone(results['fault'])
        self.assertEqual(results['output'], '')


if __name__ == '__main__':
    unittest.main()
