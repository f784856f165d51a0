#!/usr/bin/env python3
"""
Print the inferred schema of a JSON event payload.

Usage:
    inspector-schema payload.json
    echo '{"a": 1}' | inspector-schema --indent 0
"""

import argparse
import json
import sys
from typing import List, Optional

from schema_parser import DEFAULT_MAX_DEPTH, RecursionLimitExceeded, SchemaParser, schema_to_dicts


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Infer the structural schema of a JSON event payload",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s event.json                  # Schema of a payload file
  cat event.json | %(prog)s            # Read the payload from stdin
  %(prog)s event.json --indent 0       # Compact output
        """,
    )

    parser.add_argument(
        "file",
        nargs="?",
        help="JSON file with one event payload (default: stdin)",
    )

    parser.add_argument(
        "--indent",
        type=int,
        default=2,
        metavar="N",
        help="Indentation of the JSON output (default: 2, 0 = compact)",
    )

    parser.add_argument(
        "--max-depth",
        type=int,
        default=DEFAULT_MAX_DEPTH,
        metavar="N",
        help=f"Maximum nesting depth (default: {DEFAULT_MAX_DEPTH})",
    )

    args = parser.parse_args(argv)

    try:
        if args.file:
            with open(args.file) as f:
                payload = json.load(f)
        else:
            payload = json.load(sys.stdin)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: Could not read payload: {e}", file=sys.stderr)
        return 1

    if not isinstance(payload, dict):
        print("Error: Payload must be a JSON object", file=sys.stderr)
        return 1

    try:
        schema = SchemaParser(max_depth=args.max_depth).extract_schema(payload)
    except (RecursionLimitExceeded, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(schema_to_dicts(schema), indent=args.indent or None))
    return 0


if __name__ == "__main__":
    sys.exit(main())
