"""
Tests for loading little-endian program images into memory.
"""

import unittest
import io
import os
import sys
import tempfile

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from src.synacor.assembler import assemble, to_image
from src.synacor.errors import LoadError
from src.synacor.memory import MEMORY_SIZE, Memory
from src.synacor.virtual_machine import create_vm


class _FailingStream(io.RawIOBase):
    """Stream that yields some bytes, then fails."""

    def __init__(self, data: bytes):
        self._data = data

    def readable(self):
        return True

    def read(self, size=-1):
        if self._data:
            data, self._data = self._data, b''
            return data
        raise OSError("device error")


class _TrickleStream(io.RawIOBase):
    """Stream that returns one byte per read."""

    def __init__(self, data: bytes):
        self._data = data

    def readable(self):
        return True

    def read(self, size=-1):
        data, self._data = self._data[:1], self._data[1:]
        return data


class TestLoadImage(unittest.TestCase):

    def test_little_endian_words(self):
        memory = Memory()
        count = memory.load_image(bytes([0x01, 0x00, 0x02, 0x00, 0x03, 0x00]))

        self.assertEqual(count, 3)
        self.assertEqual(memory.words[:3], [1, 2, 3])
        self.assertTrue(all(word == 0 for word in memory.words[3:]))
        self.assertEqual(memory.loaded_words, 3)

    def test_second_load_clears_previous_image(self):
        memory = Memory()
        memory.load_image(bytes([1, 0, 2, 0, 3, 0, 4, 0]))
        count = memory.load_image(bytes([9, 0]))

        self.assertEqual(count, 1)
        self.assertEqual(memory.words[:4], [9, 0, 0, 0])
        self.assertEqual(memory.loaded_words, 1)

    def test_reload_through_vm(self):
        vm = create_vm()
        vm.load_assembly("SET r0, 1\nSET r1, 2\nHALT")
        vm.load_assembly("HALT")

        self.assertEqual(vm.get_memory_dump(0, 7), {addr: 0 for addr in range(7)})

    def test_high_byte_second(self):
        memory = Memory()
        memory.load_image(bytes([0x34, 0x12, 0x00, 0x80]))
        self.assertEqual(memory.words[:2], [0x1234, 0x8000])

    def test_empty_image(self):
        memory = Memory()
        self.assertEqual(memory.load_image(b''), 0)
        self.assertEqual(memory.words[0], 0)

    def test_dangling_byte(self):
        with self.assertRaises(LoadError):
            Memory().load_image(bytes([0x01, 0x00, 0x02]))
        with self.assertRaises(LoadError):
            Memory().load_image(io.BytesIO(bytes([0x01, 0x00, 0x02])))

    def test_full_memory_image(self):
        memory = Memory()
        image = bytes([0x15, 0x00]) * MEMORY_SIZE
        self.assertEqual(memory.load_image(image), MEMORY_SIZE)
        self.assertEqual(memory.words[-1], 21)

    def test_image_too_large(self):
        with self.assertRaises(LoadError):
            Memory().load_image(bytes(2 * (MEMORY_SIZE + 1)))

    def test_stream_read_in_chunks(self):
        data = to_image(list(range(10000)))
        memory = Memory()
        self.assertEqual(memory.load_image(io.BytesIO(data)), 10000)
        self.assertEqual(memory.words[9999], 9999)

    def test_short_reads_rejoin_words(self):
        memory = Memory()
        memory.load_image(_TrickleStream(bytes([0x01, 0x02, 0x03, 0x04])))
        self.assertEqual(memory.words[:2], [0x0201, 0x0403])

    def test_read_failure(self):
        with self.assertRaises(LoadError):
            Memory().load_image(_FailingStream(bytes([0x01, 0x00])))


class TestLoadFile(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)

    def _write(self, name: str, data: bytes) -> str:
        path = os.path.join(self.tmpdir.name, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    def test_load_file(self):
        path = self._write('program.bin', to_image(assemble("SET r0, 7\nHALT")))
        vm = create_vm()

        self.assertEqual(vm.load_program(path), 4)
        self.assertEqual(vm.program_source, path)
        vm.run()
        self.assertEqual(vm.get_register(0), 7)

    def test_missing_file(self):
        with self.assertRaises(LoadError):
            Memory().load_file(os.path.join(self.tmpdir.name, 'missing.bin'))

    def test_odd_length_file(self):
        path = self._write('odd.bin', b'\x00\x00\x00')
        with self.assertRaises(LoadError):
            create_vm().load_program(path)


if __name__ == '__main__':
    unittest.main()
