"""RP Sandbox — dev launcher. Runs the API server under uvicorn."""

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def build_command(host: str, port: str, reload: bool) -> list[str]:
    cmd = [sys.executable, "-m", "uvicorn", "backend.app:app", "--host", host, "--port", port]
    if reload:
        cmd.append("--reload")
    return cmd


def build_env(data_dir: Path, echo: bool = False) -> dict[str, str]:
    env = {**os.environ, "DATA_DIR": str(data_dir)}
    if echo:
        env["LLM_BACKEND"] = "echo"
    return env


def main():
    parser = argparse.ArgumentParser(description="RP Sandbox dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Replace the world with the demo tavern before starting")
    parser.add_argument("--port", default=BACKEND_PORT,
                        help=f"API port (default: {BACKEND_PORT})")
    parser.add_argument("--no-reload", action="store_true",
                        help="Disable auto-reload on source changes")
    parser.add_argument("--echo", action="store_true",
                        help="Use the echo model instead of the configured provider")
    args = parser.parse_args()

    data_dir = (args.data_dir or ROOT / "data").resolve()
    if args.demo:
        from backend.demo import create_demo_data
        create_demo_data(data_dir)
        print(f"Demo world written to {data_dir}")

    env = build_env(data_dir, echo=args.echo)

    print(f"Starting API on http://localhost:{args.port}/api ...")
    server = subprocess.Popen(build_command(HOST, args.port, not args.no_reload), cwd=ROOT, env=env)

    def shutdown(*_):
        print("\nShutting down...")
        server.terminate()
        server.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    sys.exit(server.wait())


if __name__ == "__main__":
    main()
