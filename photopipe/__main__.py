"""
Main entry point for running the package as a module.

Usage:
    python -m photopipe init-db
    python -m photopipe upload photos/*.jpg --concurrency 5
    python -m photopipe optimize full/IMG_0001.jpg
    python -m photopipe list --order asc
    python -m photopipe delete <pk> <pk>
"""

import sys
from .cli import main

if __name__ == '__main__':
    sys.exit(main())
