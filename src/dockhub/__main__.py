"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

``python -m dockhub`` entry point.
"""

import sys

from .cli import main

sys.exit(main())
