#!/usr/bin/env python3
"""
Startup script for deployment.
Runs migrations, seeds default settings if asked to, then starts uvicorn.
"""

import os
import subprocess
import sys


def run_command(cmd: list[str], description: str) -> bool:
    """Run a command and return success status."""
    print(f"\n=== {description} ===")
    try:
        subprocess.run(cmd, check=True)
        return True
    except subprocess.CalledProcessError as e:
        print(f"Warning: {description} failed with code {e.returncode}")
        return False


def main():
    print("\n" + "=" * 50)
    print("BnOverseas Startup Script")
    print("=" * 50)

    run_command(["alembic", "upgrade", "head"], "Running database migrations")

    if os.environ.get("SEED_SETTINGS", "").strip().lower() in ("1", "true", "yes"):
        run_command([sys.executable, "scripts/seed_settings.py"], "Seeding default settings")
    else:
        print("\nSkipping settings seed (SEED_SETTINGS not set)")

    port = os.environ.get("PORT", "8000")
    print(f"\n=== Starting uvicorn on port {port} ===\n")

    os.execvp("uvicorn", [
        "uvicorn",
        "app.main:app",
        "--host", "0.0.0.0",
        "--port", port
    ])


if __name__ == "__main__":
    main()
