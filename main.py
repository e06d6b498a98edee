"""
main.py: Server launcher and entry point.

Run this file to start the Odin API:

    python main.py

This file does NOT contain application logic. See app.py for the FastAPI
application, service wiring, and startup sequence.

The operator dashboard runs separately:

    streamlit run dashboard/app.py
"""

from __future__ import annotations

import os

import uvicorn


HOST = os.getenv("ODIN_HOST", "127.0.0.1")
PORT = int(os.getenv("ODIN_PORT", "8000"))


def main() -> None:
    """Start the Odin API server."""
    print("=" * 60)
    print("  Plataforma Odin: reservations and JR Points")
    print("=" * 60)
    print(f"  Server   : http://{HOST}:{PORT}")
    print(f"  API docs : http://{HOST}:{PORT}/docs")
    print("  Dashboard: streamlit run dashboard/app.py")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    # blocks until CTRL+C
    uvicorn.run(
        "app:app",
        host=HOST,
        port=PORT,
        reload=True,
        log_level="info",
    )


if __name__ == "__main__":
    main()
