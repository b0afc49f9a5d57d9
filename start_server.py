#!/usr/bin/env python3
"""Launch the matching API under uvicorn, honouring PORT (Railway/Render style)."""

import os
import subprocess
import sys

DEFAULT_PORT = 8000


def _port() -> int:
    raw = os.environ.get("PORT", str(DEFAULT_PORT))
    try:
        return int(raw)
    except ValueError:
        print(f"Warning: Invalid PORT value '{raw}', using default {DEFAULT_PORT}", file=sys.stderr)
        return DEFAULT_PORT


def main() -> int:
    port = _port()

    # The package lives under src/; expose it to the uvicorn child without installation
    src_path = os.path.abspath("src")
    if not os.path.isdir(src_path):
        print(f"Warning: src directory not found at {src_path}", file=sys.stderr)
        src_path = os.getcwd()
    existing = os.environ.get("PYTHONPATH", "")
    os.environ["PYTHONPATH"] = os.pathsep.join(filter(None, [src_path, existing]))
    sys.path.insert(0, src_path)

    try:
        import ganeungil.main  # noqa: F401
    except Exception as e:
        print(f"❌ Failed to import ganeungil.main ({type(e).__name__}): {e}", file=sys.stderr)
        import traceback

        traceback.print_exc(file=sys.stderr)
        return 1

    # Acceptance-window timers live in-process, so exactly one worker
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "ganeungil.main:app",
        "--host",
        "0.0.0.0",
        "--port",
        str(port),
        "--workers",
        "1",
        "--proxy-headers",
        "--forwarded-allow-ips",
        "*",
    ]
    print(f"🚀 Starting matching API on port {port} (PYTHONPATH={os.environ['PYTHONPATH']})", file=sys.stderr)
    try:
        result = subprocess.call(cmd)
    except KeyboardInterrupt:
        print("⚠️ Server interrupted by user", file=sys.stderr)
        return 0
    if result != 0:
        print(f"❌ Uvicorn exited with code {result}", file=sys.stderr)
    return result


if __name__ == "__main__":
    sys.exit(main())
