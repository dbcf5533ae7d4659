#!/usr/bin/env python3
"""
Stop hook: capture the summary of the turn that just ended.

Reads the hook payload from stdin and stores a NEW / UPDATE entry (or
skips a repeat) in the shared sliding context database.
"""

import json
import sys

from config import validate_config
from hooks import handle_capture_event
from server import CONFIG
from utils import log


def main():
    try:
        payload = json.load(sys.stdin)
    except json.JSONDecodeError as e:
        log(f"Invalid JSON input: {e}", "ERROR")
        sys.exit(1)

    validate_config(CONFIG)
    handle_capture_event(payload)
    sys.exit(0)


if __name__ == "__main__":
    main()
