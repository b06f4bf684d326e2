import os

import yaml

from .Assembler import Assembler
from .Core import Core, ExecutionError
from .Memory import InstructionMemory, MemoryAccessError, TEXT_BASE, DATA_BASE
from .RegisterFile import RegisterAccessError

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")

DEFAULTS = {
    "text_base": TEXT_BASE,
    "data_base": DATA_BASE,
    "instruction_memory_size": 512,
    "data_memory_size": 512,
    "stack_pointer": None,
    "max_steps": 10000,
    "verbose": False,
}


class SimulationError(Exception):
    """An instruction failed; nothing it would have written was committed."""

    def __init__(self, pc, cause):
        self.pc = pc
        self.cause = cause
        super().__init__(f"0x{pc:08X}: {cause}")


def load_config(config_path=None):
    if config_path is None:
        if not os.path.exists(DEFAULT_CONFIG_PATH):
            return dict(DEFAULTS)
        config_path = DEFAULT_CONFIG_PATH

    with open(config_path, 'r') as file:
        config = yaml.safe_load(file) or {}

    unknown = set(config) - set(DEFAULTS)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
    return {**DEFAULTS, **config}


class Simulator:
    """
    Assembles a program once, then runs it one instruction per step().

    The simulator is Running until the PC reaches the end of the program,
    after which it is Finished and step() does nothing. reset() rewinds
    the PC, registers and data memory but keeps the assembled program.
    """

    def __init__(self, source, config_path=None, config=None):
        self.config = config if config is not None else load_config(config_path)
        self.verbose = self.config["verbose"]

        assembler = Assembler(self.config["text_base"], verbose=self.verbose)
        self.program = assembler.assemble(source)
        self.instruction_memory = InstructionMemory(self.program,
                                                    self.config["instruction_memory_size"],
                                                    self.config["text_base"])
        self.core = Core(self.instruction_memory,
                         data_memory_size=self.config["data_memory_size"],
                         data_base=self.config["data_base"],
                         stack_pointer=self.config["stack_pointer"],
                         verbose=self.verbose)
        self.steps = 0
        self.finished = self._at_end()

    def _at_end(self):
        return self.core.pc >= self.instruction_memory.end_address()

    def step(self):
        if self.finished:
            return
        if self._at_end():
            print("Program Finished.")
            self.finished = True
            return

        try:
            self.core.cycle()
        except (ExecutionError, MemoryAccessError, RegisterAccessError) as e:
            print(f"Simulation error at PC 0x{self.core.pc:08X}: {e}")
            raise SimulationError(self.core.pc, e) from e

        self.steps += 1
        if self._at_end():
            print("Program Finished.")
            self.finished = True

    def run(self, max_steps=None):
        """
        Step until the program finishes.
        Returns the number of instructions retired by this call.
        """
        if max_steps is None:
            max_steps = self.config["max_steps"]

        start = self.steps
        while not self.finished:
            if self.steps - start >= max_steps:
                raise SimulationError(self.core.pc,
                                      f"Maximum step count ({max_steps}) reached")
            self.step()
        return self.steps - start

    def reset(self):
        self.core.reset()
        self.steps = 0
        self.finished = self._at_end()

    def is_finished(self):
        return self.finished

    def get_pc(self):
        return self.core.pc

    def get_register_state(self):
        return self.core.registers.get_state()

    def get_data_memory_state(self):
        return self.core.data_memory.get_state()

    def get_instruction_memory_state(self):
        return self.instruction_memory.get_state()

    def get_instruction_memory_size(self):
        return self.instruction_memory.size()

    def get_instruction(self, address):
        return format(self.instruction_memory.load(address), "032b")
