import argparse
import sys
import threading

import yaml
from flask import Flask, request, jsonify
from flask_cors import CORS

from .Assembler import AssemblerError, assemble, to_hex
from .Simulator import Simulator, SimulationError, load_config


program = '''
addi $t1, $zero, 20
addi $t0, $zero, 5
test1:
add $t0, $t0, $t0
bne $t0, $t1, test1
add $s0, $t0, $zero
'''


def format_registers(state):
    # $gp, $sp, $fp and $ra hold addresses
    rows = []
    for i, (name, value) in enumerate(state):
        if len(state) - i <= 4:
            rows.append((name, f"0x{value & 0xFFFFFFFF:08X}"))
        else:
            rows.append((name, str(value)))
    return rows


def snapshot(sim):
    return {
        'pc': sim.get_pc(),
        'finished': sim.is_finished(),
        'steps': sim.steps,
        'registers': [[name, value] for name, value in sim.get_register_state()],
        'data_memory': [[address, value] for address, value in sim.get_data_memory_state()],
        'instruction_memory': [[address, binary] for address, binary in sim.get_instruction_memory_state()],
    }


def error_response(e, status=400):
    body = {'error': str(e)}
    if isinstance(e, AssemblerError):
        body['line'] = e.line_number
    elif isinstance(e, SimulationError):
        body['pc'] = e.pc
    return jsonify(body), status


app = Flask(__name__)
CORS(app)

# one single-step session, driven by /load, /step and /reset
session = {'sim': None}
session_lock = threading.Lock()

# raised while reading config or building memories
LOAD_ERRORS = (AssemblerError, ValueError, OSError, yaml.YAMLError)


def get_program():
    data = request.get_json(silent=True) or {}
    source = data.get('program')
    if not isinstance(source, str):
        return None
    return source


@app.route('/assemble', methods=['POST'])
def assemble_program():
    source = get_program()
    if source is None:
        return jsonify({'error': "Missing 'program'"}), 400
    try:
        binary = assemble(source, load_config(app.config.get('SIM_CONFIG_PATH'))['text_base'])
    except LOAD_ERRORS as e:
        return error_response(e)
    return jsonify({'binary': binary, 'hex': [to_hex(word) for word in binary]})


@app.route('/simulate', methods=['POST'])
def simulate():
    source = get_program()
    if source is None:
        return jsonify({'error': "Missing 'program'"}), 400
    try:
        sim = Simulator(source, app.config.get('SIM_CONFIG_PATH'))
        sim.run()
    except LOAD_ERRORS + (SimulationError,) as e:
        return error_response(e)
    return jsonify(snapshot(sim))


@app.route('/load', methods=['POST'])
def load():
    source = get_program()
    if source is None:
        return jsonify({'error': "Missing 'program'"}), 400
    with session_lock:
        try:
            session['sim'] = Simulator(source, app.config.get('SIM_CONFIG_PATH'))
        except LOAD_ERRORS as e:
            session['sim'] = None
            return error_response(e)
        return jsonify(snapshot(session['sim']))


@app.route('/step', methods=['POST'])
def step():
    with session_lock:
        sim = session['sim']
        if sim is None:
            return jsonify({'error': "No program loaded"}), 409
        try:
            sim.step()
        except SimulationError as e:
            return error_response(e)
        return jsonify(snapshot(sim))


@app.route('/reset', methods=['POST'])
def reset():
    with session_lock:
        sim = session['sim']
        if sim is None:
            return jsonify({'error': "No program loaded"}), 409
        sim.reset()
        return jsonify(snapshot(sim))


@app.route('/state', methods=['GET'])
def state():
    with session_lock:
        sim = session['sim']
        if sim is None:
            return jsonify({'error': "No program loaded"}), 409
        return jsonify(snapshot(sim))


def print_state(sim):
    print("\n=== Registers ===")
    for name, value in format_registers(sim.get_register_state()):
        print(f"{name:>5}: {value}")

    print("\n=== Data Memory ===")
    for address, value in sim.get_data_memory_state():
        print(f"0x{address:08X}: {value}")

    print(f"\nPC: 0x{sim.get_pc():08X}")
    print(f"Instructions executed: {sim.steps}")


def main(source, config_path=None, verbose=False):
    config = load_config(config_path)
    if verbose:
        config['verbose'] = True
    sim = Simulator(source, config=config)
    sim.run()
    print_state(sim)
    return sim


def cli(argv=None):
    parser = argparse.ArgumentParser(
        prog="mips-sim",
        description="Assemble and run a MIPS program on a single-cycle CPU model.")
    parser.add_argument("file", nargs="?", default=None,
                        help="assembly source file (runs a built-in demo if omitted)")
    parser.add_argument("--assemble", "-a", action="store_true",
                        help="only print the assembled binary words")
    parser.add_argument("--hex", action="store_true",
                        help="with --assemble, print words in hexadecimal")
    parser.add_argument("--config", "-c", default=None,
                        help="path to a YAML config file")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="trace every executed instruction")
    parser.add_argument("--serve", action="store_true",
                        help="start the HTTP API instead")
    parser.add_argument("--port", type=int, default=5000)
    args = parser.parse_args(argv)

    if args.serve:
        app.config['SIM_CONFIG_PATH'] = args.config
        app.run(port=args.port)
        return 0

    try:
        source = program
        if args.file is not None:
            with open(args.file, 'r') as f:
                source = f.read()

        if args.assemble:
            config = load_config(args.config)
            for word in assemble(source, config['text_base']):
                print(to_hex(word) if args.hex else word)
        else:
            main(source, args.config, args.verbose)
    except LOAD_ERRORS + (SimulationError,) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(cli())
