#!/usr/bin/env python3
"""
UserPromptSubmit hook: inject ranked recent context before the agent starts.

Prints {"hookSpecificOutput": {"additionalContext": ...}} on stdout when
there is context to inject, nothing otherwise.
"""

import json
import sys
import time

from config import validate_config
from hooks import handle_recall_event
from server import CONFIG
from utils import log


def main():
    start_time = time.time()
    try:
        payload = json.load(sys.stdin)
    except json.JSONDecodeError as e:
        log(f"Invalid JSON input: {e}", "ERROR")
        sys.exit(1)

    validate_config(CONFIG)
    output = handle_recall_event(payload)
    if output:
        print(json.dumps(output))

    log(f"Recall hook completed in {time.time() - start_time:.2f}s")


if __name__ == "__main__":
    main()
