import pytest

from mips_sim.Core import ExecutionError, Funct, Opcode, decode
from mips_sim.Memory import DATA_BASE, TEXT_BASE
from mips_sim.RegisterFile import REGISTER_NAMES
from mips_sim.Simulator import Simulator, SimulationError, load_config


def reg(sim, name):
    return sim.get_register_state()[REGISTER_NAMES.index(name)][1]


SCENARIO_A = """
addi $t0, $zero, 5
addi $t1, $zero, 3
add $t2, $t0, $t1
sw $t2, 0($sp)
lw $t3, 0($sp)
"""

SCENARIO_B = """
addi $t1, $zero, 20
addi $t0, $zero, 5
test1:
add $t0, $t0, $t0
bne $t0, $t1, test1
add $s0, $t0, $zero
"""


def test_store_and_load_through_stack():
    sim = Simulator(SCENARIO_A)
    sim.run()
    assert reg(sim, "$t2") == 8
    assert reg(sim, "$t3") == 8
    assert sim.get_data_memory_state() == [(DATA_BASE, 8)]


def test_loop_until_equal():
    sim = Simulator(SCENARIO_B)
    retired = sim.run()
    assert reg(sim, "$t0") == 20
    assert reg(sim, "$s0") == 20
    assert reg(sim, "$t1") == 20
    assert retired == 7


def test_and_result_stored():
    sim = Simulator("""
    addi $t0, $zero, 170
    addi $t1, $zero, 204
    and $t2, $t0, $t1
    sw $t2, 0($sp)
    lw $t3, 0($sp)
    """)
    sim.run()
    assert sim.get_data_memory_state()[0][1] == 136


def test_count_down_to_minimum_immediate():
    sim = Simulator("""
    addi $t1, $zero, -32768
    addi $s0, $zero, 1
    loop:
    sub $t0, $t0, $s0
    bne $t0, $t1, loop
    """)
    sim.run(max_steps=100000)
    assert reg(sim, "$t0") == -32768


def test_alu_operations():
    sim = Simulator("""
    addi $t0, $zero, -16
    addi $t1, $zero, 1
    slt $s0, $t0, $t1
    slt $s1, $t1, $t0
    srl $s2, $t0, 28
    sll $s3, $t0, 2
    sll $s4, $t1, 31
    sub $s5, $t1, $t0
    or $s6, $t0, $t1
    and $s7, $t0, $t1
    """)
    sim.run()
    assert reg(sim, "$s0") == 1
    assert reg(sim, "$s1") == 0
    assert reg(sim, "$s2") == 15
    assert reg(sim, "$s3") == -64
    assert reg(sim, "$s4") == -2147483648
    assert reg(sim, "$s5") == 17
    assert reg(sim, "$s6") == -15
    assert reg(sim, "$s7") == 0


def test_add_wraps_on_overflow():
    sim = Simulator("""
    addi $t0, $zero, 1
    sll $t0, $t0, 30
    add $t1, $t0, $t0
    """)
    sim.run()
    assert reg(sim, "$t1") == -2147483648


def test_beq_taken_skips():
    sim = Simulator("""
    addi $t0, $zero, 3
    beq $t0, $t0, done
    addi $t1, $zero, 99
    done:
    addi $t2, $zero, 1
    """)
    sim.run()
    assert reg(sim, "$t1") == 0
    assert reg(sim, "$t2") == 1


def test_jal_and_jr_return():
    sim = Simulator("""
    jal func
    addi $s0, $zero, 7
    j end
    func:
    addi $v0, $zero, 3
    jr $ra
    end:
    """)
    sim.run()
    assert reg(sim, "$v0") == 3
    assert reg(sim, "$s0") == 7
    assert reg(sim, "$ra") == TEXT_BASE + 4
    assert sim.is_finished()
    assert sim.get_pc() == TEXT_BASE + 20


def test_offsets_are_subtracted_from_base():
    sim = Simulator("""
    addi $t0, $zero, 11
    sw $t0, 4($sp)
    lw $t1, 4($sp)
    """)
    sim.run()
    assert sim.get_data_memory_state() == [(DATA_BASE - 4, 11)]
    assert reg(sim, "$t1") == 11


def test_zero_register_is_never_written():
    sim = Simulator("""
    addi $zero, $zero, 5
    add $zero, $t0, $t0
    addi $t0, $zero, 1
    """)
    sim.run()
    assert reg(sim, "$zero") == 0
    assert reg(sim, "$t0") == 1


def test_initial_state():
    sim = Simulator(SCENARIO_A)
    assert sim.get_pc() == TEXT_BASE
    assert not sim.is_finished()
    assert reg(sim, "$sp") == -1
    assert all(value == 0 for name, value in sim.get_register_state() if name != "$sp")
    assert sim.get_instruction_memory_size() == 5


def test_finished_exactly_at_end_of_program():
    sim = Simulator(SCENARIO_A)
    for _ in range(4):
        sim.step()
        assert not sim.is_finished()
    sim.step()
    assert sim.is_finished()
    assert sim.get_pc() == TEXT_BASE + 4 * 5

    sim.step()
    sim.step()
    assert sim.is_finished()
    assert sim.get_pc() == TEXT_BASE + 4 * 5
    assert sim.steps == 5


def test_finished_message(capsys):
    sim = Simulator("addi $t0, $zero, 1")
    sim.step()
    sim.step()
    assert capsys.readouterr().out.count("Program Finished.") == 1


def test_empty_program_is_finished():
    sim = Simulator("# nothing here\n")
    assert sim.is_finished()
    sim.step()
    assert sim.get_pc() == TEXT_BASE


def test_reset_restores_defaults_keeps_program():
    sim = Simulator(SCENARIO_A)
    program = sim.get_instruction_memory_state()
    sim.run()

    sim.reset()
    assert sim.get_pc() == TEXT_BASE
    assert not sim.is_finished()
    assert sim.steps == 0
    assert reg(sim, "$sp") == -1
    assert reg(sim, "$t2") == 0
    assert sim.get_data_memory_state() == []
    assert sim.get_instruction_memory_state() == program

    sim.run()
    assert reg(sim, "$t3") == 8


def test_runtime_error_leaves_state_untouched():
    sim = Simulator("""
    addi $t0, $zero, 1
    sw $t0, -4($sp)
    addi $t1, $zero, 2
    """)
    sim.step()
    with pytest.raises(SimulationError) as excinfo:
        sim.step()
    assert excinfo.value.pc == TEXT_BASE + 4
    assert sim.get_pc() == TEXT_BASE + 4
    assert not sim.is_finished()
    assert reg(sim, "$t0") == 1
    assert sim.get_data_memory_state() == []
    assert sim.steps == 1


def test_load_from_unmapped_address():
    sim = Simulator("lw $t0, 0($zero)")
    with pytest.raises(SimulationError):
        sim.run()
    assert reg(sim, "$t0") == 0


def test_jump_outside_program_fails_on_fetch():
    sim = Simulator("addi $t0, $zero, 4\njr $t0\naddi $t1, $zero, 1")
    sim.step()
    sim.step()
    assert sim.get_pc() == 4
    assert not sim.is_finished()
    with pytest.raises(SimulationError):
        sim.step()


def test_run_stops_runaway_loop():
    sim = Simulator("loop:\nj loop")
    with pytest.raises(SimulationError, match="Maximum step count"):
        sim.run(max_steps=50)
    assert sim.steps == 50


def test_program_too_large():
    with pytest.raises(ValueError):
        Simulator("addi $t0, $t0, 1\n" * 129)


def test_get_instruction():
    sim = Simulator(SCENARIO_A)
    assert sim.get_instruction(TEXT_BASE) == "00100000000010000000000000000101"


def test_verbose_trace(capsys):
    config = load_config()
    config["verbose"] = True
    Simulator("addi $t0, $zero, 5", config=config).run()
    assert "0x00400000: 00100000000010000000000000000101  addi $t0, $zero, 5" in capsys.readouterr().out


def test_load_config_defaults():
    config = load_config()
    assert config["text_base"] == 0x00400000
    assert config["data_base"] == 0xFFFFFFFF
    assert config["data_memory_size"] == 512
    assert config["verbose"] is False


def test_config_file_overrides(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("data_memory_size: 16\nstack_pointer: 0xFFFFFFF3\n")
    sim = Simulator("addi $t0, $zero, 1\nsw $t0, 0($sp)", config_path=str(path))
    assert sim.core.data_memory.size() == 4
    assert reg(sim, "$sp") == -13
    sim.run()
    assert sim.get_data_memory_state() == [(0xFFFFFFF3, 1)]


def test_config_rejects_unknown_keys(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("cache_size: 64\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_decode_fields():
    inst = decode(0x1509FFFE)
    assert inst.opcode == Opcode.BNE
    assert (inst.rs, inst.rt, inst.immediate) == (8, 9, -2)

    inst = decode(0x01095020)
    assert inst.opcode == Opcode.RTYPE
    assert inst.funct == Funct.ADD
    assert (inst.rs, inst.rt, inst.rd, inst.shamt) == (8, 9, 10, 0)

    inst = decode(0x08100002)
    assert inst.opcode == Opcode.J
    assert inst.target == 0x100002
    assert str(inst) == "j 0x00400008"


@pytest.mark.parametrize("word", [0xFC000000, 0x00000001, 0x3C010000])
def test_decode_unsupported(word):
    with pytest.raises(ExecutionError):
        decode(word)


def test_jump_trace_includes_pc_region(capsys):
    config = load_config()
    config["text_base"] = 0x10400000
    config["verbose"] = True
    sim = Simulator("j end\nend:\naddi $t0, $zero, 1", config=config)
    sim.run()
    assert sim.get_pc() == 0x10400008
    assert "j 0x10400004" in capsys.readouterr().out
    assert str(decode(0x08100001)) == "j 0x00400004"
