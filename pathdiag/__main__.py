"""
pathdiag - Network path diagnostics

Entry point for running as a module:
    python -m pathdiag <target>
"""

from .cli import main

if __name__ == '__main__':
    main()
