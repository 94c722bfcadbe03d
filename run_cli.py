#!/usr/bin/env python3
"""
Launch the Traverse Tool CLI
Usage:
    python run_cli.py adjust stations.csv --heights benchmarks.csv
    python run_cli.py systems stations.csv --disable P2
    python run_cli.py classes
"""
import sys

from traverse_tool.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
