#!/usr/bin/env python3
"""
Lanceur de l'éditeur de permissions (Textual).
"""

import sys

from equipements.adapters.permissions_tui import main

if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n👋 Sortie de l'éditeur...")
        sys.exit(0)
