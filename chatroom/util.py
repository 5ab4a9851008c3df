#!/usr/bin/env python3
"""Logging utils, outward-facing IP discovery and the shared ``[host] [port]`` CLI."""

from __future__ import annotations
import argparse                          # Positional host/port parsing
import logging                           # Python stdlib logging framework
import socket                            # Needed for IP detection
import sys                               # For stderr/stdout handles
from logging.handlers import RotatingFileHandler
from typing import List, Optional

# 3rd-party: coloured terminal output for the interactive clients
from colorama import Fore, Style

from .protocol import ERROR, SUCCESS, SYSTEM_PREFIX, SYSTEM_SENDER

__all__ = ["LOG", "configure_logging", "get_local_ip", "address_parser", "parse_address", "port_number", "colorize"]

LOG_FILE = "chatroom.log"

# ----------------------------------------------------------------------
# configure_logging() builds a ready-to-use Logger with both console + file
# output.  We call it *once* (module import time) and keep the singleton in LOG.
# ----------------------------------------------------------------------

def configure_logging(level: int = logging.INFO, log_file: Optional[str] = LOG_FILE) -> logging.Logger:
    """Return a logger named "chatroom" with sane defaults (INFO level)."""

    logger = logging.getLogger("chatroom")  # Create / fetch named logger
    logger.setLevel(level)

    if logger.handlers:                     # Already configured (re-import, tests)
        return logger

    # ----- Console handler (stdout) -----
    sh = logging.StreamHandler(sys.stdout)

    # Unified log line format.  Example: [23:59:59] INFO     bob joined
    fmt = logging.Formatter("[%(asctime)s] %(levelname)-8s %(message)s", "%H:%M:%S")
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    # ----- Rotating file handler -----
    # Rotates once file hits ±1 MiB, keeps 3 backups ⇒ log ≲ 4 MiB on disk.
    if log_file:
        fh = RotatingFileHandler(
            log_file,
            maxBytes=1_048_576,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger

# Global logger so that *importers* can simply do:
#     from chatroom.util import LOG
LOG = configure_logging()

# ----------------------------------------------------------------------
# best-effort outward IP discovery (no external calls, works offline)
# ----------------------------------------------------------------------

def get_local_ip() -> str:
    """Return the host's primary IP, fallback to 127.0.0.1 on failure."""

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # connect() with UDP sends nothing; it only makes the OS pick a source IP.
        sock.connect(("8.8.8.8", 80))
        return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        sock.close()

# ----------------------------------------------------------------------
# CLI: every entry point takes an optional positional [host] [port]
# ----------------------------------------------------------------------

def port_number(text: str) -> int:
    """argparse ``type=`` for a TCP/UDP port; rejects non-numbers and out-of-range."""
    try:
        port = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {text!r}") from None
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def address_parser(prog: str, default_host: str, default_port: int) -> argparse.ArgumentParser:
    """Build the ``prog [host] [port]`` parser.

    argparse prints usage and exits with status 2 on a bad port or on excess
    arguments, so callers never get to connect in those cases.
    """
    parser = argparse.ArgumentParser(
        prog,
        epilog=f"e.g.  {prog}  |  {prog} 192.168.1.100  |  {prog} 192.168.1.100 9999",
    )
    parser.add_argument("host", nargs="?", default=default_host,
                        help=f"server address (default: {default_host})")
    parser.add_argument("port", nargs="?", type=port_number, default=default_port,
                        help=f"server port (default: {default_port})")
    return parser


def parse_address(prog: str, default_host: str, default_port: int,
                  argv: Optional[List[str]] = None) -> argparse.Namespace:
    return address_parser(prog, default_host, default_port).parse_args(argv)

# ----------------------------------------------------------------------
# console colouring shared by both clients
# ----------------------------------------------------------------------

def colorize(line: str) -> str:
    """Colour a server line by kind: login result, system status, or plain chat."""
    if line.startswith(SUCCESS):
        return f"{Fore.GREEN}{line}{Style.RESET_ALL}"
    if line.startswith(ERROR):
        return f"{Fore.RED}{line}{Style.RESET_ALL}"
    if line.startswith(SYSTEM_PREFIX) or f"] {SYSTEM_SENDER}: " in line:
        return f"{Fore.CYAN}{line}{Style.RESET_ALL}"
    return line
