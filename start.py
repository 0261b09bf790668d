#!/usr/bin/env python3
"""
Startup wrapper for the Kursor API with IPv4/IPv6 auto-detection.

This script attempts to bind to dual-stack (::) first, falling back to
IPv4-only (0.0.0.0) if IPv6 is not available on the system.

Supports environment variables:
- BIND_ADDRESS: Explicit bind address (default: auto-detect)
- PORT: HTTP port (default: 3000, read through the app settings)
- HOST: IPv4 fallback address when IPv6 is unavailable (default: 0.0.0.0)
"""

import asyncio
import os
import socket
import sys

import uvicorn

from kursor_api.config import get_settings

APP = "kursor_api.main:app"


def can_bind_ipv6_dualstack(port: int) -> bool:
    """Test if we can bind to IPv6 with dual-stack support on the given port."""
    try:
        sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        except (AttributeError, OSError):
            sock.close()
            return False

        sock.bind(("::", port))
        sock.close()
        return True
    except OSError:
        return False


async def serve_dualstack(port: int) -> None:
    """Serve on a pre-bound [::] socket with IPV6_V6ONLY disabled."""
    sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
    sock.bind(("::", port))
    sock.listen(128)
    sock.setblocking(False)

    server = uvicorn.Server(uvicorn.Config(APP, log_level="info"))
    await server.serve(sockets=[sock])


def main() -> None:
    """Start uvicorn with auto-detected or explicit bind address."""
    settings = get_settings()
    port = settings.port
    bind_address = os.getenv("BIND_ADDRESS", "auto")

    if bind_address == "auto":
        host = "::" if can_bind_ipv6_dualstack(port) else settings.host
        print(f"Auto-detected bind address [{host}]:{port}", file=sys.stderr)
    else:
        host = bind_address
        print(f"Using explicit bind address: {host}:{port}", file=sys.stderr)

    if host == "::":
        asyncio.run(serve_dualstack(port))
    else:
        uvicorn.run(APP, host=host, port=port)


if __name__ == "__main__":
    main()
