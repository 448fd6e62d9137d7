from __future__ import annotations

import json
import sys
from typing import Any


def print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2, sort_keys=True))


def print_error(message: str) -> None:
    print(f"error: {message}", file=sys.stderr)
