import re

from .Memory import TEXT_BASE
from .RegisterFile import REGISTER_NUMBERS

# opcode of every supported mnemonic
OPCODES = {
    # R-format
    "add": "000000",
    "sub": "000000",
    "and": "000000",
    "or": "000000",
    "slt": "000000",
    "sll": "000000",
    "srl": "000000",
    "jr": "000000",

    # I-format
    "addi": "001000",
    "lw": "100011",
    "sw": "101011",
    "beq": "000100",
    "bne": "000101",

    # J-format
    "j": "000010",
    "jal": "000011",
}

FUNCTS = {
    "add": "100000",
    "sub": "100010",
    "and": "100100",
    "or": "100101",
    "slt": "101010",
    "sll": "000000",
    "srl": "000010",
    "jr": "001000",
}

OPERAND_COUNTS = {
    "add": 3, "sub": 3, "and": 3, "or": 3, "slt": 3,
    "sll": 3, "srl": 3,
    "jr": 1,
    "addi": 3,
    "lw": 2, "sw": 2,
    "beq": 3, "bne": 3,
    "j": 1, "jal": 1,
}

IMM_MIN = -32768
IMM_MAX = 32767

LABEL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
NUMBER_RE = re.compile(r"^[+-]?\d+$")
OFFSET_RE = re.compile(r"^([+-]?\d+)?\((\$\w+)\)$")


class AssemblerError(Exception):
    def __init__(self, message, line_number=None, line=None):
        self.message = message
        self.line_number = line_number
        self.line = line
        super().__init__(message)

    def __str__(self):
        if self.line_number is None:
            return self.message
        return f"Line {self.line_number}: {self.message} in instruction: {self.line}"


def to_binary(value, bits):
    return format(value & ((1 << bits) - 1), f"0{bits}b")


def to_hex(binary):
    return f"0x{int(binary, 2):08X}"


class Assembler:
    """
    Two-pass MIPS assembler.

    Pass one maps every label to the address of the instruction it marks,
    pass two encodes each instruction into a 32 character binary string.
    Any malformed line aborts assembly with an AssemblerError.
    """

    def __init__(self, base=TEXT_BASE, verbose=False):
        self.base = base
        self.verbose = verbose

    def assemble(self, source):
        lines = self._preprocess(source)
        labels = self._first_pass(lines)
        if self.verbose:
            print({label: f"0x{address:08X}" for label, address in labels.items()})
        return self._second_pass(lines, labels)

    def _preprocess(self, source):
        """Strip comments and blank lines, keeping 1-based source line numbers."""
        lines = []
        for number, line in enumerate(source.split("\n"), start=1):
            line = line.split("#")[0].strip()
            if line:
                lines.append((number, line))
        return lines

    def _split_label(self, number, line):
        if ":" not in line:
            return None, line
        label, rest = line.split(":", 1)
        label = label.strip()
        if not LABEL_RE.match(label):
            raise AssemblerError(f"Invalid label name '{label}'", number, line)
        return label, rest.strip()

    def _first_pass(self, lines):
        labels = {}
        count = 0
        for number, line in lines:
            label, rest = self._split_label(number, line)
            if label is not None:
                if label in labels:
                    raise AssemblerError(f"Duplicate label '{label}'", number, line)
                labels[label] = self.base + 4 * count
            if rest:
                count += 1
        return labels

    def _second_pass(self, lines, labels):
        binary_code = []
        for number, line in lines:
            _, inst = self._split_label(number, line)
            if not inst:
                continue

            pc = self.base + 4 * len(binary_code)
            parts = [part for part in re.split(r"[\s,]+", inst) if part]
            mnemonic, operands = parts[0], parts[1:]

            try:
                binary_code.append(self._encode(mnemonic, operands, pc, labels))
            except AssemblerError as e:
                raise AssemblerError(e.message, number, line) from None
        return binary_code

    def _encode(self, mnemonic, operands, pc, labels):
        if mnemonic not in OPCODES:
            raise AssemblerError(f"Unsupported instruction: {mnemonic}")
        if len(operands) != OPERAND_COUNTS[mnemonic]:
            raise AssemblerError(f"'{mnemonic}' expects {OPERAND_COUNTS[mnemonic]} operands, "
                                 f"got {len(operands)}")
        opcode = OPCODES[mnemonic]

        if mnemonic in ("add", "sub", "and", "or", "slt"):  # rd, rs, rt
            rd, rs, rt = (self._register(op) for op in operands)
            return opcode + rs + rt + rd + "00000" + FUNCTS[mnemonic]

        elif mnemonic in ("sll", "srl"):  # rd, rt, shamt
            rd = self._register(operands[0])
            rt = self._register(operands[1])
            shamt = self._number(operands[2])
            if not 0 <= shamt <= 31:
                raise AssemblerError(f"Shift amount must be between 0 and 31, got {shamt}")
            return opcode + "00000" + rt + rd + to_binary(shamt, 5) + FUNCTS[mnemonic]

        elif mnemonic == "jr":  # rs
            rs = self._register(operands[0])
            return opcode + rs + "00000" + "00000" + "00000" + FUNCTS[mnemonic]

        elif mnemonic == "addi":  # rt, rs, imm
            rt = self._register(operands[0])
            rs = self._register(operands[1])
            imm = self._immediate(operands[2], "Immediate value")
            return opcode + rs + rt + to_binary(imm, 16)

        elif mnemonic in ("lw", "sw"):  # rt, offset(rs)
            rt = self._register(operands[0])
            match = OFFSET_RE.match(operands[1])
            if not match:
                raise AssemblerError(f"Expected offset(register), got '{operands[1]}'")
            offset = self._immediate(match.group(1) or "0", "Offset value")
            rs = self._register(match.group(2))
            return opcode + rs + rt + to_binary(offset, 16)

        elif mnemonic in ("beq", "bne"):  # rs, rt, label
            rs = self._register(operands[0])
            rt = self._register(operands[1])
            target = self._label(operands[2], labels)
            # relative to the instruction after this one
            offset = (target - (pc + 4)) // 4
            if not IMM_MIN <= offset <= IMM_MAX:
                raise AssemblerError(f"Branch target '{operands[2]}' is out of range")
            return opcode + rs + rt + to_binary(offset, 16)

        # j, jal
        target = self._label(operands[0], labels)
        return opcode + to_binary((target >> 2) & 0x03FFFFFF, 26)

    def _register(self, name):
        if name not in REGISTER_NUMBERS:
            raise AssemblerError(f"Unknown register '{name}'")
        return to_binary(REGISTER_NUMBERS[name], 5)

    def _number(self, text):
        if not NUMBER_RE.match(text):
            raise AssemblerError(f"Invalid number format '{text}'")
        return int(text)

    def _immediate(self, text, what):
        value = self._number(text)
        if not IMM_MIN <= value <= IMM_MAX:
            raise AssemblerError(f"{what} out of range ({IMM_MIN} to {IMM_MAX}): {value}")
        return value

    def _label(self, name, labels):
        if name not in labels:
            raise AssemblerError(f"Label not found: {name}")
        return labels[name]


def assemble(source, base=TEXT_BASE):
    return Assembler(base).assemble(source)
