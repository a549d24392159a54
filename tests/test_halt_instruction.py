"""
Tests for HALT and NOOP instructions.

HALT stops execution and closes the output channel; NOOP only advances pc.
"""

import unittest
from test_assembly_framework import BaseAssemblyTestCase, AssemblyTestCase, run_assembly_test
from src.synacor.cpu import CPUState
from src.synacor.errors import InvalidOpcodeError
from src.synacor.virtual_machine import create_vm


class TestHaltInstruction(BaseAssemblyTestCase):
    """Test HALT instruction."""

    def test_halt_basic(self):
        """Test basic HALT functionality."""
        test_cases = [
            AssemblyTestCase(
                "halt_immediately",
                "HALT",
                {},
                expected_output=""
            ),
            AssemblyTestCase(
                "halt_after_operations",
                "SET r0, 42\nSET r1, 99\nHALT",
                {0: 42, 1: 99}
            ),
            AssemblyTestCase(
                "halt_skips_remaining",
                "SET r0, 10\nHALT\nSET r1, 20",  # Should not execute last SET
                {0: 10, 1: 0}
            ),
            AssemblyTestCase(
                "halt_in_subroutine",
                "CALL sub\nSET r3, 999\nHALT\nsub: SET r5, 42\nHALT",
                {3: 0, 5: 42}
            ),
        ]

        self.run_test_cases(test_cases)

    def test_halt_state_checking(self):
        """Test that HALT properly sets CPU state."""
        results = run_assembly_test(AssemblyTestCase(
            "halt_state_check",
            "SET r5, 123\nHALT\nSET r6, 456",
            {5: 123, 6: 0}
        ))

        self.assertTrue(results['success'], results['errors'])
        self.assertEqual(results['cpu_state'], CPUState.HALTED)
        self.assertEqual(results['halt_reason'], "HALT instruction executed")
        self.assertEqual(results['pc'], 3)

    def test_empty_memory_halts(self):
        """Zeroed memory decodes as HALT."""
        vm = create_vm({'io_watchdog': 1.0})
        self.assertFalse(vm.step())
        self.assertEqual(vm.cpu.state, CPUState.HALTED)
        self.assertTrue(vm.output.closed)
        self.assertTrue(vm.token.cancelled)

    def test_step_after_halt_does_nothing(self):
        vm = create_vm()
        vm.load_assembly("HALT\nSET r0, 1")
        vm.run()
        count = vm.cpu.instruction_count

        self.assertFalse(vm.step())
        self.assertEqual(vm.cpu.instruction_count, count)
        self.assertEqual(vm.get_register(0), 0)


class TestNoopInstruction(BaseAssemblyTestCase):

    def test_noop(self):
        test_cases = [
            AssemblyTestCase("noop_then_halt", "NOOP\nNOOP\nHALT", {}),
            AssemblyTestCase("noop_between_sets", "SET r0, 1\nNOOP\nSET r1, 2\nHALT", {0: 1, 1: 2}),
        ]

        self.run_test_cases(test_cases)

    def test_noop_advances_one_word(self):
        results = run_assembly_test(AssemblyTestCase("noop_pc", "NOOP\nNOOP\nNOOP\nHALT", {}))
        self.assertEqual(results['pc'], 3)
        self.assertEqual(results['cycles'], 3)  # HALT does not count as a continuing step


class TestInvalidOpcode(BaseAssemblyTestCase):

    def test_unknown_opcode_is_fatal(self):
        test_cases = [
            AssemblyTestCase("opcode_22", "SET r0, 1\nDATA 22\nSET r0, 2\nHALT", {0: 1},
                             expected_fault=InvalidOpcodeError),
            AssemblyTestCase("opcode_register_word", "DATA 32768", {},
                             expected_fault=InvalidOpcodeError),
        ]

        self.run_test_cases(test_cases)

    def test_fault_reports_address(self):
        results = run_assembly_test(AssemblyTestCase(
            "opcode_address", "NOOP\nDATA 999", {}, expected_fault=InvalidOpcodeError
        ))

        self.assertTrue(results['success'], results['errors'])
        self.assertEqual(results['fault'].opcode, 999)
        self.assertEqual(results['fault'].address, 1)
        self.assertEqual(results['cpu_state'], CPUState.ERROR)
        self.assertIn("999", results['halt_reason'])


if __name__ == '__main__':
    unittest.main()
