"""Launch the generation backend (FastAPI under uvicorn)."""
import os
import subprocess
import sys
from pathlib import Path


def main():
    root = Path(__file__).parent

    # Ensure data directory exists
    (root / "data").mkdir(parents=True, exist_ok=True)

    # DOCKER=1 binds to all interfaces and disables autoreload
    is_docker = os.environ.get("DOCKER", "0") == "1"
    host = "0.0.0.0" if is_docker else "127.0.0.1"
    port = os.environ.get("PORT", "") or os.environ.get("BACKEND_PORT", "8000")

    print("=" * 60)
    print("  Generation service -- run.py starting")
    print(f"  DOCKER={os.environ.get('DOCKER', '(not set)')}")
    print(f"  Backend (FastAPI) -> http://{host}:{port}")
    print("=" * 60)

    backend_cmd = [
        sys.executable, "-m", "uvicorn", "backend.main:app",
        "--host", host, "--port", port,
    ]
    if not is_docker:
        backend_cmd.append("--reload")

    backend = subprocess.Popen(backend_cmd, cwd=str(root))
    try:
        backend.wait()
    except KeyboardInterrupt:
        print("\nShutting down...")
        backend.terminate()
        backend.wait()


if __name__ == "__main__":
    main()
