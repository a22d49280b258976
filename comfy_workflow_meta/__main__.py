"""
Comfy Workflow Meta - CLI Entry Point
Run with: python -m comfy_workflow_meta workflow.json
"""

import argparse
import json
import sys


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="comfy_workflow_meta",
        description="Comfy Workflow Meta - validate ComfyUI workflows and print their metadata",
    )
    parser.add_argument("workflow", nargs="?", help="Workflow JSON file, or - for stdin")
    parser.add_argument(
        "--validate", action="store_true", help="Print only the validation result (exit 1 if invalid)"
    )
    parser.add_argument("--indent", type=int, default=2, help="JSON indent (default: 2)")
    parser.add_argument("--version", "-v", action="store_true", help="Show version and exit")

    args = parser.parse_args(argv)

    if args.version:
        from . import __version__

        print(f"comfy-workflow-meta v{__version__}")
        return 0

    if not args.workflow:
        parser.error("a workflow file (or -) is required")

    from .assembler import MetadataAssembler
    from .exceptions import format_error_for_user
    from .validator import validate_workflow_json

    try:
        if args.workflow == "-":
            text = sys.stdin.read()
        else:
            with open(args.workflow, encoding="utf-8") as f:
                text = f.read()
    except OSError as e:
        print(f"Error: cannot read {args.workflow}: {e.strerror}", file=sys.stderr)
        return 2

    if args.validate:
        result = validate_workflow_json(text)
        print(json.dumps(result.to_dict(), indent=args.indent))
        return 0 if result.is_valid else 1

    result = MetadataAssembler().try_parse_json(text)
    if result.failed:
        print(f"Error: {format_error_for_user(result.error)}", file=sys.stderr)
        for suggestion in result.error.suggestions:
            print(f"  - {suggestion}", file=sys.stderr)
        return 1

    print(json.dumps(result.value.to_dict(), indent=args.indent))
    return 0


if __name__ == "__main__":
    sys.exit(main())
