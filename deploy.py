#!/usr/bin/env python3
"""
VS Code Server stack deployment.

Reads the parameter file, authorizes the caller's public IP, creates or
updates the CloudFormation stack, follows its events until it settles and
saves the stack outputs.

Requirements:
- boto3
- PyYAML
- requests
- rich
- AWS credentials configured via environment variables or a profile
"""

import logging
import os
import sys

import yaml
from botocore.exceptions import BotoCoreError, ClientError

import stack_display as display
from ip_resolver import OPEN_CIDR, resolve_caller_cidr
from stack_config import (
    IP_PARAMETER_KEY,
    DeploymentContext,
    add_monitor_arguments,
    load_context,
    make_parser,
    read_template,
)
from stack_errors import StackToolError
from stack_manager import StackManager, Operation
from stack_monitor import DEPLOY_POLICY, StackMonitor
from stack_outputs import OUTPUTS_FILE, report_outputs

logger = logging.getLogger(__name__)

_SECRET_MARKERS = ("token", "password", "secret")


def build_parser():
    parser = make_parser(
        "deploy", "Deploy the VS Code Server CloudFormation stack"
    )
    parser.add_argument(
        "--template",
        "-t",
        help="CloudFormation template file (default: TemplateFile from the "
        "parameters file, else nf-core-vscode-server-ssh.yaml)",
    )
    parser.add_argument(
        "--keep-configured-ip",
        action="store_true",
        help=f"Send {IP_PARAMETER_KEY} as configured instead of the detected public IP",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deployed without calling AWS",
    )
    add_monitor_arguments(parser)
    return parser


def mask_value(key: str, value: str) -> str:
    if any(marker in key.lower() for marker in _SECRET_MARKERS):
        return "********"
    return value


def check_files(params_file: str) -> bool:
    display.print_info("Checking required files...")
    if not os.path.isfile(params_file):
        display.print_error(f"Parameters file not found: {params_file}")
        return False
    return True


def apply_caller_ip(context: DeploymentContext) -> None:
    """Override the access range with the caller's IP unless configured otherwise."""
    if not context.override_ip:
        configured = context.template_parameters.get(IP_PARAMETER_KEY)
        display.print_info(
            f"Using configured {IP_PARAMETER_KEY}: {configured or '(template default)'}"
        )
        return

    display.print_info("Detecting your public IP address...")
    cidr = resolve_caller_cidr()
    context.set_parameter(IP_PARAMETER_KEY, cidr)
    if cidr == OPEN_CIDR:
        display.print_warning(f"Could not detect your public IP, using {IP_PARAMETER_KEY}: {cidr}")
        display.print_warning("Access is open to the whole internet. This is NOT safe for production.")
    else:
        display.print_success(f"{IP_PARAMETER_KEY}: {cidr}")


def print_dry_run(context: DeploymentContext) -> None:
    plan = {
        "StackName": context.identity.name,
        "Region": context.identity.region,
        "TemplateFile": context.template_file,
        "Profile": context.profile or "default credentials",
        "Parameters": {key: mask_value(key, value) for key, value in context.parameter_list()},
    }
    display.print_info("DRY RUN: would deploy the stack with:")
    display.print_plain(yaml.safe_dump(plan, default_flow_style=False, sort_keys=False))


def deploy_stack(manager: StackManager, context: DeploymentContext, template_body: str) -> None:
    if manager.stack_exists():
        display.print_warning(f"Stack {context.identity.name} already exists. Updating...")
        operation = Operation.UPDATE
    else:
        display.print_info(f"Creating new stack: {context.identity.name}")
        operation = Operation.CREATE

    display.print_info("Deploying CloudFormation stack...")
    manager.submit(
        operation,
        template_body,
        context.parameter_list(),
        template_name=os.path.basename(context.template_file),
    )
    display.print_success(f"Stack {operation.value} initiated successfully")


def print_next_steps() -> None:
    display.print_plain()
    display.print_success("Deployment complete! You can now access your VS Code Server.")
    display.print_info("Next steps:")
    display.print_plain("  1. Open the URL from the outputs above")
    display.print_plain("  2. Use the password from the outputs to log in")
    display.print_plain("  3. Or set up Remote SSH following the README instructions")
    display.print_plain()


def main(argv=None) -> int:
    """Entry point for the deploy command. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    display.setup_logging(args.log_file, args.verbose)
    logger.info(f"Deploy started with parameters file {args.param_file}")
    display.print_banner("nf-core VS Code Server - CloudFormation Deployment")

    if not check_files(args.param_file):
        return 1

    try:
        display.print_info(f"Reading parameters from {args.param_file}...")
        context = load_context(
            args.param_file,
            template_file=args.template,
            profile=args.profile,
            override_ip=False if args.keep_configured_ip else None,
        )
        display.print_success(f"Stack Name: {context.identity.name}")
        display.print_success(f"Region: {context.identity.region}")

        template_body = read_template(context.template_file)
        display.print_success("All required files found")

        apply_caller_ip(context)
        display.print_success(
            f"Parameters built successfully ({len(context.parameter_list())} parameter(s))"
        )

        if args.dry_run:
            print_dry_run(context)
            return 0

        manager = StackManager(context.identity, profile=context.profile)
        deploy_stack(manager, context, template_body)

        display.print_info("Monitoring stack progress (this may take 10-15 minutes)...")
        display.print_plain()
        monitor = StackMonitor(
            manager,
            DEPLOY_POLICY,
            poll_interval=args.poll_interval,
            timeout=args.timeout,
            on_event=display.print_event,
        )
        result = monitor.run()
        display.print_plain()

        if not result.succeeded:
            display.print_error(f"Stack deployment failed with status: {result.status}")
            display.print_error("Deployment failed. Check the CloudFormation console for details.")
            display.print_plain(f"  Console: {context.identity.console_url}")
            return 1

        display.print_success("Stack deployment completed successfully!")
        report_outputs(manager.get_outputs(), OUTPUTS_FILE)
        print_next_steps()
        return 0

    except StackToolError as e:
        display.print_error(str(e))
        return 1
    except (ClientError, BotoCoreError) as e:
        display.print_error(f"AWS error: {e}")
        return 1
    except KeyboardInterrupt:
        display.print_plain()
        display.print_warning(
            "Interrupted. The CloudFormation operation keeps running; "
            "check the console for its progress."
        )
        return 130


if __name__ == "__main__":
    sys.exit(main())
