#!/usr/bin/env python3
"""Entry point for running the Eeko trigger simulation server."""

from simulation.server import run_server

if __name__ == "__main__":
    run_server()
