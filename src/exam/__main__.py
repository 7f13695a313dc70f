"""
Entry point for running the exam CLI as a module.

Usage:
    python -m src.exam start --topic Algebra
    python -m src.exam status
    python -m src.exam --help
"""
from .cli import main

if __name__ == "__main__":
    main()
