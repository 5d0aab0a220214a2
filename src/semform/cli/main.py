# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Entry point for the semform command-line interface."""

import argparse
import json
import logging
import sys
from pathlib import Path

from semform.config.form_config import FormConfigError, load_form_config
from semform.forms.model import create_raw_composite, merge_initial_values
from semform.forms.schema import CompositeSchema, build_composite_schema
from semform.model.values import EMPTY, CompositeValue, FieldState, FieldValue
from semform.persistence.diff import compute_model_diff
from semform.persistence.patch import ValuePatch, apply_value_patch

# ###############
# Public Interface
# ###############


def main() -> None:
    """Run the semform CLI."""
    parser = argparse.ArgumentParser(
        prog="semform",
        description="semform: semantic form configuration and diff tool",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print debug logging to stderr",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # check subcommand
    check_parser = subparsers.add_parser(
        "check",
        help="Check a form configuration",
        description="Report every configuration error of a form configuration file.",
    )
    check_parser.add_argument("form", help="Path to the form configuration (YAML)")

    # diff subcommand
    diff_parser = subparsers.add_parser(
        "diff",
        help="Show the store changes between two saved form states",
        description=(
            "Apply two saved value patches to the form and print the statements "
            "that would be deleted and inserted when going from the first to the second."
        ),
    )
    diff_parser.add_argument("form", help="Path to the form configuration (YAML)")
    diff_parser.add_argument("before", help="Value patch (JSON) of the stored state")
    diff_parser.add_argument("after", help="Value patch (JSON) of the edited state")

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    sys.exit(_dispatch(args))


# ################
# Implementation
# ################


def _dispatch(args: argparse.Namespace) -> int:
    """Dispatch to the appropriate subcommand handler."""
    if args.command == "check":
        return _cmd_check(args)
    if args.command == "diff":
        return _cmd_diff(args)
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    """Handle the check subcommand."""
    path = Path(args.form)
    if not path.exists():
        print(f"Error: form configuration '{path}' does not exist.", file=sys.stderr)
        return 1

    try:
        config = load_form_config(path)
    except FormConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Checking form configuration '{path}' with {len(config.fields)} field(s)...")
    schema = build_composite_schema(config)
    errors = schema.all_errors()
    for error in errors:
        print(f"Error: {error.message}", file=sys.stderr)
    if errors:
        return 1

    print("No issues found.")
    return 0


def _cmd_diff(args: argparse.Namespace) -> int:
    """Handle the diff subcommand."""
    try:
        config = load_form_config(Path(args.form))
    except FormConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    schema = build_composite_schema(config)
    try:
        before = _restore_model(schema, _read_patch(Path(args.before)))
        after = _restore_model(schema, _read_patch(Path(args.after)))
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    entries = compute_model_diff(before, after)
    if not entries:
        print("No differences.")
        return 0

    for entry in entries:
        print(f"{entry.subject.n3()} {entry.definition.id}")
        for node in entry.deleted:
            print(f"  - {node.n3()}")
        for inserted in entry.inserted:
            suffix = f" @{inserted.index}" if inserted.index is not None else ""
            print(f"  + {inserted.value.n3()}{suffix}")
    return 0


def _read_patch(path: Path) -> ValuePatch:
    """Read a value patch from a JSON file."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in '{path}': {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Value patch '{path}' must be a JSON object")
    return data


def _restore_model(schema: CompositeSchema, patch: ValuePatch) -> CompositeValue:
    """Rebuild a complete model from a value patch."""
    return _attach_schema(apply_value_patch(create_raw_composite(EMPTY, schema), patch), schema)


def _attach_schema(composite: CompositeValue, schema: CompositeSchema) -> CompositeValue:
    """Give restored nested composites the definitions of their schema."""
    fields = dict(composite.fields)
    for field_id, nested_schema in schema.nested.items():
        state = fields.get(field_id)
        if state is None:
            continue
        values: list[FieldValue] = []
        for value in state.values:
            if isinstance(value, CompositeValue):
                restored = merge_initial_values(create_raw_composite(value, nested_schema), value)
                value = _attach_schema(restored, nested_schema)
            values.append(value)
        fields[field_id] = FieldState(values=tuple(values), errors=state.errors)
    return composite.model_copy(update={"fields": fields})
