#!/usr/bin/env python3
"""
Startup script for the patchstream API server.
"""

import logging
import os
import sys

import uvicorn


def main():
    """Start the FastAPI server."""
    host = os.getenv("PATCHSTREAM_HOST", "0.0.0.0")
    port = int(os.getenv("PATCHSTREAM_PORT", "8000"))

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print("🚀 Starting patchstream API...")
    print(f"🌐 Server will be available at: http://localhost:{port}")
    print(f"📖 API documentation will be available at: http://localhost:{port}/docs")
    print("\n" + "=" * 60)

    try:
        uvicorn.run(
            "patchstream.main:app",
            host=host,
            port=port,
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\n🛑 Server stopped by user")
    except Exception as e:
        print(f"\n❌ Server failed to start: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
