"""Colored status lines for the operator terminal"""

import sys

from colorama import init as colorama_init, Fore, Style

_verbose = False


def setup(verbose: bool = False) -> None:
    """Enable ANSI colors on the terminal and set debug verbosity"""
    global _verbose
    colorama_init()
    _verbose = bool(verbose)


def _emit(prefix: str, color: str, msg: str) -> None:
    print(f"{color}{Style.BRIGHT}[{prefix}]{Style.RESET_ALL} {msg}", file=sys.stderr, flush=True)


def info(msg: str) -> None:
    _emit("INFO", Fore.BLUE, msg)


def success(msg: str) -> None:
    _emit("SUCCESS", Fore.GREEN, msg)


def warning(msg: str) -> None:
    _emit("WARNING", Fore.YELLOW, msg)


def error(msg: str) -> None:
    _emit("ERROR", Fore.RED, msg)


def debug(msg: str) -> None:
    """Print debug message to stderr, only with --verbose"""
    if _verbose:
        print(f"[DEBUG] {msg}", file=sys.stderr, flush=True)


def print_character(ch: str, count: int) -> None:
    """Print `ch` repeated `count` times"""
    if not ch:
        return
    n = max(0, min(int(count), 161))
    print(ch[:1] * n)


def banner(*lines: str, width: int = 40) -> None:
    print(f"{Fore.CYAN}{'=' * width}{Style.RESET_ALL}")
    for line in lines:
        print(f"{Fore.CYAN}{line.center(width).rstrip()}{Style.RESET_ALL}")
    print(f"{Fore.CYAN}{'=' * width}{Style.RESET_ALL}")
