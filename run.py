#!/usr/bin/env python3
"""
Run script for the Luz/Sombra analyzer.
"""

import os
import sys

# Add the current directory to Python path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from LuzSombraApp.app import main

if __name__ == "__main__":
    sys.exit(main())
