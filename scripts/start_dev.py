#!/usr/bin/env python3
"""
Development startup script.

Starts the reference remote cart service and prints the settings the
cart engine will use to talk to it.
"""

import os
import subprocess
import sys
from pathlib import Path

# Project root
PROJECT_ROOT = Path(__file__).parent.parent


def check_dependencies():
    """Check if required dependencies are installed."""
    try:
        import fastapi
        import uvicorn
        import httpx
        import tenacity
        print("✓ All core dependencies installed")
        return True
    except ImportError as e:
        print(f"✗ Missing dependency: {e.name}")
        print("\nRun: pip install -e .[test]")
        return False


def check_env():
    """Report whether a .env file will be picked up."""
    env_file = PROJECT_ROOT / ".env"
    if env_file.exists():
        print("✓ Configuration file found")
    else:
        print("! No .env file, using defaults (GROCERY_* environment variables still apply)")
    return True


def show_settings():
    from grocery_cart.core.config import get_settings

    settings = get_settings()
    print(f"\n  Currency:               {settings.default_currency}")
    print(f"  VAT rate:               {settings.vat_rate}")
    print(f"  Free delivery from:     {settings.free_delivery_threshold}")
    print(f"  Delivery (std/express): {settings.standard_delivery_charge}/{settings.express_delivery_charge}")
    print(f"  Remote cart URL:        {settings.remote_cart_base_url}")


def start_service(port: str):
    """Run the remote cart service until interrupted."""
    print(f"\n🛒 Starting Remote Cart Service on http://localhost:{port} ...")
    process = subprocess.Popen(
        [
            sys.executable, "-m", "uvicorn",
            "grocery_cart.remote_service.main:app",
            "--reload",
            "--host", "0.0.0.0",
            "--port", port,
        ],
        cwd=PROJECT_ROOT,
        env=dict(os.environ),
    )

    print("\n" + "=" * 60)
    print(f"📍 Cart API: http://localhost:{port}/docs")
    print("\nPress Ctrl+C to stop")
    print("=" * 60)

    try:
        process.wait()
    except KeyboardInterrupt:
        print("\n\nShutting down...")
        process.terminate()
        process.wait()
        print("Stopped.")


def main():
    print("=" * 60)
    print("Grocery Cart - Development Server")
    print("=" * 60)

    print("\nRunning pre-flight checks...")

    if not check_dependencies():
        sys.exit(1)

    check_env()
    show_settings()

    print("\n✓ All checks passed!")

    start_service(os.getenv("REMOTE_CART_PORT", "8001"))


if __name__ == "__main__":
    main()
