from dataclasses import dataclass
from enum import IntEnum

from .Memory import DataMemory, DATA_BASE
from .RegisterFile import RegisterFile, REGISTER_NAMES, SP, RA


class Opcode(IntEnum):
    RTYPE = 0b000000
    J = 0b000010
    JAL = 0b000011
    BEQ = 0b000100
    BNE = 0b000101
    ADDI = 0b001000
    LW = 0b100011
    SW = 0b101011


class Funct(IntEnum):
    SLL = 0b000000
    SRL = 0b000010
    JR = 0b001000
    ADD = 0b100000
    SUB = 0b100010
    AND = 0b100100
    OR = 0b100101
    SLT = 0b101010


class ExecutionError(Exception):
    pass


@dataclass(frozen=True)
class Instruction:
    word: int
    opcode: Opcode
    funct: Funct = None
    rs: int = 0
    rt: int = 0
    rd: int = 0
    shamt: int = 0
    immediate: int = 0
    target: int = 0

    @property
    def mnemonic(self):
        if self.opcode == Opcode.RTYPE:
            return self.funct.name.lower()
        return self.opcode.name.lower()

    def __str__(self):
        return self.describe()

    def describe(self, pc=None):
        """
        Assembly text for the instruction. Jump targets take their top four
        bits from pc; without one only the 28-bit pseudo-address is known.
        """
        regs = REGISTER_NAMES
        if self.opcode == Opcode.RTYPE:
            if self.funct == Funct.JR:
                return f"jr {regs[self.rs]}"
            if self.funct in (Funct.SLL, Funct.SRL):
                return f"{self.mnemonic} {regs[self.rd]}, {regs[self.rt]}, {self.shamt}"
            return f"{self.mnemonic} {regs[self.rd]}, {regs[self.rs]}, {regs[self.rt]}"
        if self.opcode in (Opcode.LW, Opcode.SW):
            return f"{self.mnemonic} {regs[self.rt]}, {self.immediate}({regs[self.rs]})"
        if self.opcode == Opcode.ADDI:
            return f"addi {regs[self.rt]}, {regs[self.rs]}, {self.immediate}"
        if self.opcode in (Opcode.BEQ, Opcode.BNE):
            return f"{self.mnemonic} {regs[self.rs]}, {regs[self.rt]}, {self.immediate}"
        address = self.target << 2
        if pc is not None:
            address |= pc & 0xF0000000
        return f"{self.mnemonic} 0x{address:08X}"


def sign_extend16(value):
    if value & 0x8000:
        return value - 0x10000
    return value


def decode(word):
    """Split a 32-bit instruction word into its fields."""
    try:
        opcode = Opcode((word >> 26) & 0x3F)
    except ValueError:
        raise ExecutionError(f"Unsupported opcode: {(word >> 26) & 0x3F:06b}") from None

    rs = (word >> 21) & 0x1F
    rt = (word >> 16) & 0x1F

    if opcode == Opcode.RTYPE:
        try:
            funct = Funct(word & 0x3F)
        except ValueError:
            raise ExecutionError(f"Unsupported R-Type function code: {word & 0x3F}") from None
        return Instruction(word, opcode, funct, rs=rs, rt=rt,
                           rd=(word >> 11) & 0x1F, shamt=(word >> 6) & 0x1F)

    if opcode in (Opcode.J, Opcode.JAL):
        return Instruction(word, opcode, target=word & 0x03FFFFFF)

    return Instruction(word, opcode, rs=rs, rt=rt, immediate=sign_extend16(word & 0xFFFF))


class Core:
    """
    Single-cycle datapath: program counter, register file and data memory.
    Instruction memory is shared read-only with the Simulator.
    """

    def __init__(self, instruction_memory, data_memory_size=512, data_base=DATA_BASE,
                 stack_pointer=None, verbose=False):
        self.instruction_memory = instruction_memory
        self.data_memory_size = data_memory_size
        self.data_base = data_base
        self.stack_pointer = data_base if stack_pointer is None else stack_pointer
        self.verbose = verbose
        self.reset()

    def reset(self):
        self.pc = self.instruction_memory.base
        self.registers = RegisterFile()
        self.data_memory = DataMemory(self.data_memory_size, self.data_base)
        self.registers.write(SP, self.stack_pointer)

    def fetch(self):
        return self.instruction_memory.load(self.pc)

    def cycle(self):
        word = self.fetch()
        inst = decode(word)
        if self.verbose:
            print(f"0x{self.pc:08X}: {word:032b}  {inst.describe(self.pc)}")
        self.execute(inst)

    def execute(self, inst):
        regs = self.registers
        next_pc = self.pc + 4

        if inst.opcode == Opcode.RTYPE:
            if inst.funct == Funct.ADD:  # add rd, rs, rt
                regs.write(inst.rd, regs.read(inst.rs) + regs.read(inst.rt))
            elif inst.funct == Funct.SUB:
                regs.write(inst.rd, regs.read(inst.rs) - regs.read(inst.rt))
            elif inst.funct == Funct.AND:
                regs.write(inst.rd, regs.read(inst.rs) & regs.read(inst.rt))
            elif inst.funct == Funct.OR:
                regs.write(inst.rd, regs.read(inst.rs) | regs.read(inst.rt))
            elif inst.funct == Funct.SLT:  # signed compare
                regs.write(inst.rd, 1 if regs.read(inst.rs) < regs.read(inst.rt) else 0)
            elif inst.funct == Funct.SLL:  # sll rd, rt, shamt
                regs.write(inst.rd, regs.read(inst.rt) << inst.shamt)
            elif inst.funct == Funct.SRL:  # logical shift, zero fill
                regs.write(inst.rd, (regs.read(inst.rt) & 0xFFFFFFFF) >> inst.shamt)
            elif inst.funct == Funct.JR:
                next_pc = regs.read(inst.rs) & 0xFFFFFFFF
            else:
                raise ExecutionError(f"Unsupported R-Type function code: {inst.funct}")

        elif inst.opcode == Opcode.ADDI:  # addi rt, rs, imm
            regs.write(inst.rt, regs.read(inst.rs) + inst.immediate)

        # the stack grows down from the data base, so offsets are subtracted
        elif inst.opcode == Opcode.LW:  # lw rt, imm(rs)
            address = regs.read(inst.rs) - inst.immediate
            regs.write(inst.rt, self.data_memory.load(address))

        elif inst.opcode == Opcode.SW:  # sw rt, imm(rs)
            address = regs.read(inst.rs) - inst.immediate
            self.data_memory.store(address, regs.read(inst.rt))

        elif inst.opcode == Opcode.BEQ:
            if regs.read(inst.rs) == regs.read(inst.rt):
                next_pc = self.pc + 4 + inst.immediate * 4

        elif inst.opcode == Opcode.BNE:
            if regs.read(inst.rs) != regs.read(inst.rt):
                next_pc = self.pc + 4 + inst.immediate * 4

        elif inst.opcode == Opcode.J:
            next_pc = (self.pc & 0xF0000000) | (inst.target << 2)

        elif inst.opcode == Opcode.JAL:
            regs.write(RA, self.pc + 4)
            next_pc = (self.pc & 0xF0000000) | (inst.target << 2)

        else:
            raise ExecutionError(f"Unsupported opcode: {inst.opcode:06b}")

        self.pc = next_pc & 0xFFFFFFFF
