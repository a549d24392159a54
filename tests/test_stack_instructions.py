"""
Tests for stack instructions: PUSH and POP, and the Stack itself.
"""

import unittest
from test_assembly_framework import BaseAssemblyTestCase, AssemblyTestCase, run_assembly_test
from src.synacor.cpu import CPUState
from src.synacor.errors import StackUnderflowError
from src.synacor.stack import Stack


class TestStack(unittest.TestCase):

    def test_push_then_pop_returns_value(self):
        stack = Stack()
        for value in (0, 1, 32767, 32775):
            stack.push(value)
            self.assertEqual(stack.pop(), value)
        self.assertEqual(len(stack), 0)

    def test_lifo_order_and_top_first(self):
        stack = Stack()
        for value in (1, 2, 3):
            stack.push(value)

        self.assertEqual(stack.top_first(), [3, 2, 1])
        self.assertEqual([stack.pop(), stack.pop(), stack.pop()], [3, 2, 1])

    def test_pop_empty_raises_underflow(self):
        stack = Stack()
        with self.assertRaises(StackUnderflowError):
            stack.pop()

        stack.push(5)
        stack.pop()
        with self.assertRaises(StackUnderflowError):
            stack.pop()


class TestStackInstructions(BaseAssemblyTestCase):
    """Test PUSH and POP instructions."""

    def test_push_pop(self):
        test_cases = [
            AssemblyTestCase(
                "push_literal_pop_register",
                "PUSH 42\nPOP r0\nHALT",
                {0: 42}
            ),
            AssemblyTestCase(
                "swap_through_stack",
                "SET r0, 1\nSET r1, 2\nPUSH r0\nPUSH r1\nPOP r0\nPOP r1\nHALT",
                {0: 2, 1: 1}
            ),
            AssemblyTestCase(
                "pop_into_memory",
                "PUSH 7\nPOP 800\nHALT",
                {},
                expected_memory={800: 7}
            ),
            AssemblyTestCase(
                "push_resolves_register",
                "SET r3, 300\nPUSH r3\nSET r3, 0\nPOP r4\nHALT",
                {3: 0, 4: 300}
            ),
        ]

        self.run_test_cases(test_cases)

    def test_pop_empty_stack_is_fatal(self):
        results = run_assembly_test(AssemblyTestCase(
            "pop_underflow",
            "PUSH 1\nPOP r0\nPOP r1\nSET r2, 9\nHALT",
            {0: 1, 1: 0, 2: 0},
            expected_fault=StackUnderflowError
        ))

        self.assertTrue(results['success'], results['errors'])
        self.assertEqual(results['cpu_state'], CPUState.ERROR)
        self.assertEqual(results['pc'], 4)

    def test_ret_consumes_pushed_value(self):
        results = run_assembly_test(AssemblyTestCase(
            "push_address_ret",
            "PUSH target\nRET\nSET r0, 99\ntarget: SET r1, 1\nHALT",
            {0: 0, 1: 1}
        ))

        self.assertTrue(results['success'], results['errors'])
        self.assertEqual(results['stack'], [])


if __name__ == '__main__':
    unittest.main()
