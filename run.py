"""delve CLI entry point.

Provides subcommands for running the layout API server and for generating,
inspecting and replaying layouts from the terminal. Accepts configuration via
flags and environment variables, with optional .env loading.

Run `python run.py --help` for details.
"""

import argparse
import json
import os
import signal
import sys
from textwrap import dedent

from colorama import Fore, Style
from colorama import init as _color_init
from dotenv import load_dotenv

_color_init()

# Disable colors if output is not a real terminal (e.g., during pytest capture)
_COLOR_ENABLED = sys.stdout.isatty()


def _load_version() -> str:
    path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "VERSION")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().strip()
    except OSError:
        return "0.4.0"


__version__ = _load_version()


def parse_args(argv: list[str]) -> argparse.Namespace:
    description = """
    delve layout generator

    Serve the layout HTTP API or generate seeded dungeon layouts (navigation
    graph plus room volumes) from the command line. The same seed and
    configuration always reproduce the same layout.
    """

    epilog = dedent(
        """
        Environment variables:
          HOST                              Bind address for the web server (default: 0.0.0.0)
          PORT                              Port for the web server (default: 5000)
          DELVE_LOG_LEVEL                   debug | info | warn | error (default: info)
          DELVE_LOG_JSON                    1 to emit JSON log lines
          DELVE_ENABLE_GENERATION_METRICS   0 to skip per-phase timing
          DELVE_DISABLE_CACHE               1 to bypass the per-seed layout cache

        Examples:
          # Run the API server on the default host and port
          python run.py server

          # Generate a layout for a seed and write it to a file
          python run.py generate --seed abc123 --goal 150 0 150 --output layout.json

          # Use a preset and skip rooms
          python run.py generate --preset Labyrinth --no-rooms

          # Radial rooms only
          python run.py rooms --strategy Radial --seed 42

          # Check that a stored layout still regenerates identically
          python run.py replay layout.json
        """
    )

    parser = argparse.ArgumentParser(
        prog="delve",
        description=dedent(description),
        epilog=epilog,
        formatter_class=argparse.RawTextHelpFormatter,
    )

    parser.add_argument(
        "--env-file",
        dest="env_file",
        help="Path to a .env file to load before processing flags",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"delve layout generator {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # server subcommand
    server_parser = subparsers.add_parser(
        "server",
        help="Run the layout HTTP API",
        formatter_class=argparse.RawTextHelpFormatter,
        description="Run the Flask layout API server",
    )
    server_parser.add_argument(
        "--host",
        default=None,
        help="Host interface to bind (default: env HOST or 0.0.0.0)",
    )
    server_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: env PORT or 5000)",
    )
    server_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable Flask debug mode with verbose error pages",
    )
    server_parser.set_defaults(command="server")

    # generate subcommand
    gen_parser = subparsers.add_parser(
        "generate",
        help="Generate a full layout and print it as JSON",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    gen_parser.add_argument("--seed", default=None, help="Seed (int or string); random when omitted")
    gen_parser.add_argument("--preset", default=None, help="Graph preset name (see `strategies`)")
    gen_parser.add_argument("--config", dest="config_path", default=None, help="JSON file with layout options")
    gen_parser.add_argument(
        "--goal",
        nargs=3,
        type=float,
        action="append",
        metavar=("X", "Y", "Z"),
        help="Goal position; repeat for several goals",
    )
    gen_parser.add_argument("--no-rooms", action="store_true", help="Skip room placement")
    gen_parser.add_argument("--output", "-o", default=None, help="Write JSON here instead of stdout")
    gen_parser.add_argument("--indent", type=int, default=2, help="JSON indent (default: 2)")
    gen_parser.set_defaults(command="generate")

    # rooms subcommand
    rooms_parser = subparsers.add_parser(
        "rooms",
        help="Place rooms only and print them as JSON",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    rooms_parser.add_argument("--seed", default=None, help="Seed (int or string); random when omitted")
    rooms_parser.add_argument("--strategy", default="Poisson", help="Growth strategy (default: Poisson)")
    rooms_parser.add_argument("--max-rooms", type=int, default=None, help="Room cap")
    rooms_parser.add_argument("--output", "-o", default=None, help="Write JSON here instead of stdout")
    rooms_parser.add_argument("--indent", type=int, default=2, help="JSON indent (default: 2)")
    rooms_parser.set_defaults(command="rooms")

    # replay subcommand
    replay_parser = subparsers.add_parser(
        "replay",
        help="Regenerate a stored layout record and compare",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    replay_parser.add_argument("path", help="Path to a layout JSON record")
    replay_parser.set_defaults(command="replay")

    # strategies subcommand
    strat_parser = subparsers.add_parser(
        "strategies",
        help="List room strategies and graph presets",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    strat_parser.set_defaults(command="strategies")

    # If no subcommand provided, default to server
    if len(argv) == 0:
        argv = ["server"]

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "server"
    return args


def _emit(payload: dict, output: str | None, indent: int) -> None:
    text = json.dumps(payload, indent=indent or None)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text + "\n")
        print(f"[OK] wrote {output}", file=sys.stderr)
    else:
        print(text)


def _cmd_generate(args) -> int:
    from delve.layout import ConfigError, LayoutConfig, assemble_layout, coerce_seed

    options = {}
    if args.config_path:
        with open(args.config_path, "r", encoding="utf-8") as f:
            options = json.load(f)
    if args.preset:
        options["preset"] = args.preset
    if args.seed is not None:
        options["seed"] = args.seed
    if args.goal:
        options["goals"] = args.goal
    if args.no_rooms:
        options["include_rooms"] = False
    try:
        options["seed"] = coerce_seed(options.get("seed"))
        layout = assemble_layout(LayoutConfig.from_dict(options))
    except ConfigError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2
    _emit(layout.to_dict(), args.output, args.indent)
    return 0


def _cmd_rooms(args) -> int:
    from delve.layout import ConfigError, RoomConfig, RoomPlacer, coerce_seed, generate_seed

    options = {"strategy": args.strategy}
    if args.max_rooms is not None:
        options["max_rooms"] = args.max_rooms
    try:
        seed = coerce_seed(args.seed)
        options["seed"] = generate_seed() if seed is None else seed
        placer = RoomPlacer(RoomConfig.from_dict(options))
    except ConfigError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2
    rooms = placer.generate()
    payload = {
        "seed": options["seed"],
        "strategy": placer.strategy.name,
        "rooms": [r.to_dict() for r in rooms],
        "metrics": placer.metrics,
    }
    _emit(payload, args.output, args.indent)
    return 0


def _cmd_replay(args) -> int:
    from delve.layout import analyze_layout, replay

    if not os.path.exists(args.path):
        print(f"[ERROR] File not found: {args.path}")
        return 1
    with open(args.path, "r", encoding="utf-8") as f:
        record = json.load(f)
    result = replay(record)
    problems = analyze_layout(result.layout)
    status = "MATCH" if result.matches else "MISMATCH"
    if _COLOR_ENABLED:
        status = f"{Fore.GREEN if result.matches else Fore.RED}{status}{Style.RESET_ALL}"
    print(f"seed={record.get('seed')} replay={status}")
    for key in result.differences:
        print(f"  differs: {key}")
    for p in problems:
        print(f"  problem: {p}")
    return 0 if result.matches and not problems else 1


def _cmd_strategies(args) -> int:
    from delve.layout import PRESETS, STRATEGIES

    print("Room strategies:")
    for name in STRATEGIES:
        print(f"  {name}")
    print("Graph presets:")
    for name in PRESETS:
        print(f"  {name.capitalize()}")
    return 0


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    # Load .env if requested, else a default .env when present
    if getattr(args, "env_file", None):
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    mode = (getattr(args, "command", None) or "server").lower()
    if mode == "generate":
        return _cmd_generate(args)
    if mode == "rooms":
        return _cmd_rooms(args)
    if mode == "replay":
        return _cmd_replay(args)
    if mode == "strategies":
        return _cmd_strategies(args)

    # Resolve configuration from CLI flags or env vars
    env_host = os.getenv("HOST", "0.0.0.0")
    env_port = int(os.getenv("PORT", "5000"))
    host = getattr(args, "host", None) or env_host
    port = int(getattr(args, "port", None) or env_port)
    debug = bool(getattr(args, "debug", False) or os.getenv("FLASK_DEBUG") == "1")

    def handle_sigint(sig, frame):
        print("\n[INFO] Shutting down server...")
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_sigint)

    # Import server entrypoints only after environment is ready
    from delve.logging_utils import log
    from delve.server import start_server

    title = (
        f"{Fore.CYAN}{Style.BRIGHT}delve Layout Server{Style.RESET_ALL}" if _COLOR_ENABLED else "delve Layout Server"
    )

    def label(text: str) -> str:
        return f"{Fore.YELLOW}{text}{Style.RESET_ALL}" if _COLOR_ENABLED else text

    def value(val: str | int) -> str:
        return f"{Fore.GREEN}{val}{Style.RESET_ALL}" if _COLOR_ENABLED else str(val)

    divider = (Fore.MAGENTA + "=" * 40 + Style.RESET_ALL) if _COLOR_ENABLED else "=" * 40
    lines = [
        divider,
        f"  {title}",
        divider,
        f"  {label('Version:'):12} {value(__version__)}",
        f"  {label('Host:'):12} {value(host)}",
        f"  {label('Port:'):12} {value(port)}",
        f"  {label('Debug:'):12} {value('YES' if debug else 'NO')}",
        f"  {label('Cache:'):12} {value('off' if os.getenv('DELVE_DISABLE_CACHE') == '1' else 'on')}",
        divider,
        "",
    ]
    print("\n".join(lines))
    log.info(event="startup", mode=mode, host=host, port=port, debug=debug)
    start_server(host=host, port=port, debug=debug)
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
