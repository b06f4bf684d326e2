from .Assembler import Assembler, AssemblerError, assemble, to_hex
from .Core import Core, ExecutionError, Instruction, decode
from .Memory import DataMemory, InstructionMemory, MemoryAccessError, TEXT_BASE, DATA_BASE
from .RegisterFile import RegisterFile, RegisterAccessError, REGISTER_NAMES
from .Simulator import Simulator, SimulationError, load_config
