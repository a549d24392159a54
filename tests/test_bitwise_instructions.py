"""
Tests for bitwise instructions: AND, OR, NOT.

NOT produces a 15-bit result.
"""

import unittest
from test_assembly_framework import BaseAssemblyTestCase, AssemblyTestCase


class TestBitwiseInstructions(BaseAssemblyTestCase):
    """Test bitwise logical instructions."""

    def test_and_instruction(self):
        test_cases = [
            AssemblyTestCase(
                "and_basic_values",
                "AND r0, 15, 7\nHALT",  # 1111 & 0111 = 0111
                {0: 7}
            ),
            AssemblyTestCase(
                "and_register_values",
                "SET r1, 0x7F00\nSET r2, 0x00FF\nAND r0, r1, r2\nHALT",
                {0: 0, 1: 0x7F00, 2: 0x00FF}
            ),
            AssemblyTestCase(
                "and_all_ones",
                "AND r0, 0x7FFF, 0x2AAA\nHALT",
                {0: 0x2AAA}
            ),
        ]

        self.run_test_cases(test_cases)

    def test_or_instruction(self):
        test_cases = [
            AssemblyTestCase(
                "or_basic_values",
                "OR r0, 8, 3\nHALT",
                {0: 11}
            ),
            AssemblyTestCase(
                "or_disjoint_registers",
                "SET r1, 0x7F00\nSET r2, 0x00FF\nOR r0, r1, r2\nHALT",
                {0: 0x7FFF}
            ),
            AssemblyTestCase(
                "or_with_zero",
                "OR r0, 0, 1234\nHALT",
                {0: 1234}
            ),
        ]

        self.run_test_cases(test_cases)

    def test_not_instruction(self):
        test_cases = [
            AssemblyTestCase("not_zero", "NOT r0, 0\nHALT", {0: 32767}),
            AssemblyTestCase("not_all_ones", "NOT r0, 32767\nHALT", {0: 0}),
            AssemblyTestCase("not_pattern", "NOT r0, 0x2AAA\nHALT", {0: 0x5555}),
            AssemblyTestCase(
                "not_register",
                "SET r1, 1\nNOT r0, r1\nHALT",
                {0: 32766, 1: 1}
            ),
            AssemblyTestCase(
                "not_masks_high_bit",
                "NOT r0, r1\nHALT",
                {0: 0x7FFF - 0x1234},
                registers={1: 0x9234}  # high bit set, as read raw from memory
            ),
        ]

        self.run_test_cases(test_cases)


if __name__ == '__main__':
    unittest.main()
