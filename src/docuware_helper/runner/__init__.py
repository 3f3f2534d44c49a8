"""
CLI runner module.

Modes:
- gentoken / gencookie: credential logon
- lsorgs / lscabinets: list organizations and file cabinets
- get: print selected documents as JSON
- update: overwrite fields of one document
- download: save selected documents as PDF files
- upload: add a file to a cabinet
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
