import numpy as np

REGISTER_NAMES = ["$zero", "$at", "$v0", "$v1", "$a0", "$a1", "$a2", "$a3",
                  "$t0", "$t1", "$t2", "$t3", "$t4", "$t5", "$t6", "$t7",
                  "$s0", "$s1", "$s2", "$s3", "$s4", "$s5", "$s6", "$s7",
                  "$t8", "$t9", "$k0", "$k1", "$gp", "$sp", "$fp", "$ra"]

REGISTER_NUMBERS = {name: i for i, name in enumerate(REGISTER_NAMES)}

ZERO = 0
SP = 29
RA = 31


class RegisterAccessError(IndexError):
    pass


def to_signed32(value):
    value &= 0xFFFFFFFF
    if value & 0x80000000:
        return value - 0x100000000
    return value


class RegisterFile:
    def __init__(self):
        self.registers = np.zeros(len(REGISTER_NAMES), dtype=np.int32)

    def _check(self, reg_num):
        if not 0 <= reg_num < len(self.registers):
            raise RegisterAccessError(f"Invalid register number: {reg_num}")

    def read(self, reg_num):
        self._check(reg_num)
        return int(self.registers[reg_num])

    def write(self, reg_num, value):
        """
        Store a value wrapped to a signed 32-bit word.
        Writes to $zero are dropped.
        """
        self._check(reg_num)
        if reg_num == ZERO:
            return
        self.registers[reg_num] = to_signed32(value)

    def get_state(self):
        return [(name, int(value)) for name, value in zip(REGISTER_NAMES, self.registers)]
