"""
Entry point for running the dlxkit CLI as a module.

Usage: python -m dlxkit.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
