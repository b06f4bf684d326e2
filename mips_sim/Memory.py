import numpy as np

from .RegisterFile import to_signed32

TEXT_BASE = 0x00400000
DATA_BASE = 0xFFFFFFFF

MAX_MEMORY_SIZE = 1024 * 1024  # bytes


class MemoryAccessError(IndexError):
    pass


def _check_size(size):
    if size % 4 != 0:
        raise ValueError("Memory size must be a multiple of 4 bytes")
    if size > MAX_MEMORY_SIZE:
        raise ValueError("Memory size must not exceed 1 MB")


class InstructionMemory:
    """
    Read-only word store for an assembled program.
    Slot i holds the instruction at base + 4*i.
    """

    def __init__(self, binary_instructions, size=512, base=TEXT_BASE):
        _check_size(size)
        if len(binary_instructions) > size // 4:
            raise ValueError(f"Program has {len(binary_instructions)} instructions, "
                             f"instruction memory holds {size // 4}")
        self.base = base
        self.memory = np.array([int(inst, 2) for inst in binary_instructions], dtype=np.uint32)

    def _to_index(self, address):
        offset = address - self.base
        if offset % 4 != 0:
            raise MemoryAccessError(f"Misaligned instruction address: 0x{address & 0xFFFFFFFF:08X}")
        index = offset // 4
        if index < 0 or index >= len(self.memory):
            raise MemoryAccessError(f"Invalid instruction address: 0x{address & 0xFFFFFFFF:08X}")
        return index

    def load(self, address):
        return int(self.memory[self._to_index(address)])

    def size(self):
        return len(self.memory)

    def end_address(self):
        return self.base + 4 * len(self.memory)

    def get_state(self):
        return [(self.base + 4 * i, format(int(word), "032b")) for i, word in enumerate(self.memory)]


class DataMemory:
    """
    Word store that grows downward from a high base address, used as the stack.
    Slot i holds the word at base - 4*i.
    """

    def __init__(self, size=512, base=DATA_BASE):
        _check_size(size)
        self.base = base
        self.memory = np.zeros(size // 4, dtype=np.int32)

    def _to_index(self, address):
        address &= 0xFFFFFFFF
        offset = self.base - address
        if offset % 4 != 0:
            raise MemoryAccessError(f"Misaligned data address: 0x{address:08X}")
        index = offset // 4
        if index < 0 or index >= len(self.memory):
            raise MemoryAccessError(f"Invalid memory address: 0x{address:08X}")
        return index

    def load(self, address):
        return int(self.memory[self._to_index(address)])

    def store(self, address, value):
        self.memory[self._to_index(address)] = to_signed32(value)

    def size(self):
        return len(self.memory)

    def get_state(self):
        # only populated slots, highest address first
        return [(self.base - 4 * int(i), int(self.memory[i])) for i in np.nonzero(self.memory)[0]]
