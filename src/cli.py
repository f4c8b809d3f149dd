#!/usr/bin/env python3
"""CLI entry point for the terraform test harness.

Commands:
- apply-destroy: run one apply/retry/destroy cycle against a template
- resources: create a random resource collection, show it, destroy it

Examples:
    tfharness apply-destroy test-fixtures/minimal-example --random-resources
    tfharness apply-destroy ./tmpl -var region=us-east-1 --retry \\
        --retryable 'RequestLimitExceeded=API throttling'
    tfharness resources
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from apply import RETRY_SENTINEL, apply_and_destroy, new_apply_options
from config import load_harness_config
from errors import ConfigError, HarnessError
from resources import random_resource_collection

logger = logging.getLogger(__name__)


def _parse_var(value: str) -> tuple[str, str]:
    """Parse a key=value -var argument."""
    key, sep, val = value.partition('=')
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got '{value}'")
    return key, val


def _parse_retryable(value: str) -> tuple[str, str]:
    """Parse SIGNATURE[=REASON]. The reason is optional.

    The value is split on the first '=', so a signature containing '=' cannot
    be given here; list it under retryable_errors in harness.yaml instead.
    """
    signature, _, reason = value.partition('=')
    if not signature:
        raise argparse.ArgumentTypeError("retryable signature must not be empty")
    return signature, reason


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='tfharness',
        description='Apply/destroy infrastructure test fixtures',
    )
    parser.add_argument('--config', type=Path, help='Path to harness.yaml')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    sub = parser.add_subparsers(dest='command')

    cycle = sub.add_parser('apply-destroy', help='Run one apply/retry/destroy cycle')
    cycle.add_argument('template', type=Path, help='Template directory')
    cycle.add_argument('-n', '--name', default='', help='Label used in logs and reports')
    cycle.add_argument('-var', '--var', dest='vars', action='append', type=_parse_var, default=[],
                       metavar='KEY=VALUE', help='Variable passed to the tool (repeatable)')
    cycle.add_argument('--retry', action='store_true', help='Retry once on a retryable error')
    cycle.add_argument('--retryable', action='append', type=_parse_retryable, default=[],
                       metavar='SIGNATURE[=REASON]',
                       help='Retryable error signature (repeatable, split on the first "="; '
                            'use harness.yaml for signatures containing "=")')
    cycle.add_argument('--random-resources', action='store_true',
                       help='Provision a random resource collection and pass its variables')
    cycle.add_argument('--report-dir', type=Path, help='Write JSON and Markdown reports here')
    cycle.add_argument('--json', action='store_true', help='Print the cycle report as JSON')

    sub.add_parser('resources', help='Create and destroy a random resource collection')
    return parser


def _run_cycle(args, config) -> int:
    options = new_apply_options(config)
    options.test_name = args.name or args.template.name
    options.template_path = args.template
    options.vars = dict(args.vars)
    options.attempt_terraform_retry = args.retry
    options.retryable_terraform_errors.update(dict(args.retryable))
    if args.report_dir:
        options.report_dir = args.report_dir

    if args.random_resources:
        with random_resource_collection(config=config) as rand:
            # Explicit -var values win over generated ones
            options.vars = {**rand.terraform_vars(), **options.vars}
            result = apply_and_destroy(options)
    else:
        result = apply_and_destroy(options)

    if args.json:
        print(json.dumps(result.report.to_dict(), indent=2))
    else:
        print(result.output)

    if RETRY_SENTINEL in result.output:
        logger.info(f"Retried apply: {'; '.join(result.retry_reasons)}")
    if result.error is not None:
        logger.error(f"Cycle failed: {result.error}")
        return 1
    return 0


def _run_resources(config) -> int:
    with random_resource_collection(config=config) as rand:
        print(f"Region:   {rand.aws_region}")
        print(f"UniqueId: {rand.unique_id}")
        print(f"KeyPair:  {rand.key_pair.name}")
        print(f"AMI:      {rand.ami_id}")
    if rand.teardown_error is not None:
        return 1
    return 0


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_harness_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    try:
        if args.command == 'apply-destroy':
            return _run_cycle(args, config)
        if args.command == 'resources':
            return _run_resources(config)
    except HarnessError as e:
        print(f"Error: {e}")
        return 1

    return 1


if __name__ == '__main__':
    sys.exit(main())
