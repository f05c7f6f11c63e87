#!/usr/bin/env python3
"""
Offline preflight check for a stack deployment.

Validates the parameter file and template without AWS credentials or API
calls, so mistakes surface before deploy.py touches CloudFormation.
"""

import sys

from stack_config import IP_PARAMETER_KEY, load_context, make_parser, read_template
from stack_errors import ConfigurationError
from stack_manager import TEMPLATE_BODY_LIMIT


def check_parameters(params_file):
    """Check that the parameter file loads and names a stack."""
    print("Checking parameters file...")
    try:
        context = load_context(params_file)
    except ConfigurationError as e:
        print(f"✗ {e}")
        return None

    print("✓ Parameters loaded successfully")
    print(f"  - Stack name: {context.identity.name}")
    print(f"  - Region: {context.identity.region}")
    print(f"  - Template parameters: {len(context.parameter_list())}")
    if context.override_ip:
        print(f"  - {IP_PARAMETER_KEY}: replaced by your public IP at deploy time")
    else:
        configured = context.template_parameters.get(IP_PARAMETER_KEY, "(template default)")
        print(f"  - {IP_PARAMETER_KEY}: {configured}")
    return context


def check_template(template_file):
    """Check the template exists and report how it will be submitted."""
    print(f"\nChecking template {template_file}...")
    try:
        size = len(read_template(template_file).encode("utf-8"))
    except ConfigurationError as e:
        print(f"✗ {e}")
        return False
    print(f"✓ Template found ({size} bytes)")
    if size > TEMPLATE_BODY_LIMIT:
        print(f"  - Larger than {TEMPLATE_BODY_LIMIT} bytes: will be uploaded to S3")
    else:
        print("  - Will be sent inline")
    return True


def run_checks(params_file, template_file=None):
    """Run all checks. Returns True if every check passed."""
    context = check_parameters(params_file)
    if context is None:
        return False
    return check_template(template_file or context.template_file)


def main(argv=None):
    """Run all validation checks."""
    parser = make_parser("validate", "Validate the stack parameters file and template")
    parser.add_argument("--template", "-t", help="CloudFormation template file")
    args = parser.parse_args(argv)

    print("Stack Deployment Validation")
    print("=" * 40)
    passed = run_checks(args.param_file, args.template)
    print("\n" + "=" * 40)

    if not passed:
        print("Validation failed!")
        return 1

    print("Validation complete!")
    print("\nTo deploy:")
    print(f"  python deploy.py --param-file {args.param_file} --dry-run")
    return 0


if __name__ == "__main__":
    sys.exit(main())
