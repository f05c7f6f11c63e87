#!/usr/bin/env python3
"""
VS Code Server stack cleanup.

Deletes the CloudFormation stack after an explicit confirmation, follows the
deletion until the stack is gone and removes the local files deploy left
behind.
"""

import logging
import os
import sys
from typing import Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

import stack_display as display
from stack_config import (
    DEFAULT_REGION,
    StackIdentity,
    add_monitor_arguments,
    load_context,
    make_parser,
)
from stack_errors import ConfigurationError, StackToolError
from stack_manager import StackManager
from stack_monitor import DELETE_POLICY, StackMonitor
from stack_outputs import OUTPUTS_FILE

logger = logging.getLogger(__name__)

SSH_KEY_PATH = os.path.join("~", ".ssh", "nf-core-vscode-server.pem")
SSH_CONFIG_PATH = os.path.join("~", ".ssh", "config")
SSH_HOST_ALIAS = "nf-core-dev"


def build_parser():
    parser = make_parser("cleanup", "Delete the VS Code Server CloudFormation stack")
    parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Delete without asking for confirmation",
    )
    add_monitor_arguments(parser)
    return parser


def read_identity(params_file: str) -> Tuple[StackIdentity, Optional[str]]:
    """Stack identity and AWS profile from the parameter file.

    When the file is absent the stack name and region are asked for instead.

    Raises:
        ConfigurationError: If the file is invalid or no stack name is given
    """
    if os.path.isfile(params_file):
        display.print_info(f"Reading parameters from {params_file}...")
        context = load_context(params_file)
        return context.identity, context.profile

    display.print_warning(f"Parameters file not found: {params_file}")
    display.print_info("Please provide stack name and region manually")
    name = display.ask("Enter stack name: ")
    region = display.ask(f"Enter region [{DEFAULT_REGION}]: ") or DEFAULT_REGION
    if not name:
        raise ConfigurationError("Stack name is required")
    return StackIdentity(name=name, region=region), None


def confirm_deletion(stack_name: str) -> Optional[int]:
    """Ask twice before deleting.

    Returns:
        None to proceed, otherwise the exit code to stop with
    """
    display.print_plain()
    display.print_warning("━" * 66)
    display.print_warning(" " * 24 + "WARNING")
    display.print_warning("━" * 66)
    display.print_plain()
    display.print_warning(f"This will permanently delete the stack: {stack_name}")
    display.print_warning("All resources including the EC2 instance and data will be removed.")
    display.print_plain()

    if display.ask("Are you sure you want to continue? (yes/no): ") != "yes":
        display.print_info("Deletion cancelled")
        return 0

    display.print_plain()
    if display.ask("Type the stack name to confirm: ") != stack_name:
        display.print_error("Stack name does not match. Deletion cancelled.")
        return 1
    return None


def cleanup_local_files(
    outputs_file: str = OUTPUTS_FILE,
    ssh_key_path: Optional[str] = None,
    ssh_config_path: Optional[str] = None,
    interactive: bool = True,
) -> None:
    """Remove files created by deploy; the SSH key only on request."""
    ssh_key_path = ssh_key_path or SSH_KEY_PATH
    ssh_config_path = ssh_config_path or SSH_CONFIG_PATH
    display.print_info("Cleaning up local files...")

    if os.path.isfile(outputs_file):
        os.remove(outputs_file)
        display.print_success(f"Removed {outputs_file}")

    key_path = os.path.expanduser(ssh_key_path)
    if interactive and os.path.isfile(key_path):
        display.print_plain()
        if display.ask(f"Remove SSH key ({ssh_key_path})? (yes/no): ") == "yes":
            os.remove(key_path)
            display.print_success("Removed SSH key")

    config_path = os.path.expanduser(ssh_config_path)
    if os.path.isfile(config_path):
        with open(config_path, "r", encoding="utf-8", errors="replace") as f:
            has_entry = any(line.strip() == f"Host {SSH_HOST_ALIAS}" for line in f)
        if has_entry:
            display.print_plain()
            display.print_warning(f"Found SSH config entry for '{SSH_HOST_ALIAS}'")
            display.print_info(f"You may want to manually remove it from {ssh_config_path}")


def main(argv=None) -> int:
    """Entry point for the cleanup command. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    display.setup_logging(args.log_file, args.verbose)
    logger.info(f"Cleanup started with parameters file {args.param_file}")
    display.print_banner("nf-core VS Code Server - Stack Cleanup")

    try:
        identity, configured_profile = read_identity(args.param_file)
        display.print_success(f"Stack Name: {identity.name}")
        display.print_success(f"Region: {identity.region}")

        manager = StackManager(identity, profile=args.profile or configured_profile)

        if not manager.stack_exists():
            display.print_error(
                f"Stack '{identity.name}' does not exist in region '{identity.region}'"
            )
            return 1

        display.print_info("Retrieving stack resources...")
        resources = manager.list_resources()
        if resources:
            display.print_resources(resources)

        if not args.yes:
            stop_code = confirm_deletion(identity.name)
            if stop_code is not None:
                return stop_code

        display.print_info("Initiating stack deletion...")
        manager.delete()
        display.print_success("Stack deletion initiated")

        display.print_plain()
        display.print_info("Monitoring deletion progress...")
        display.print_plain()
        monitor = StackMonitor(
            manager,
            DELETE_POLICY,
            poll_interval=args.poll_interval,
            timeout=args.timeout,
            on_event=display.print_event,
        )
        result = monitor.run()

        if not result.succeeded:
            display.print_error("Stack deletion failed!")
            display.print_info("Some resources may need to be manually deleted")
            display.print_info("Check the CloudFormation console for details:")
            display.print_plain(f"  {identity.console_url}")
            display.print_error(
                "Cleanup encountered errors. Please check the CloudFormation console."
            )
            return 1

        display.print_success("Stack deleted successfully!")
        cleanup_local_files(interactive=not args.yes)

        display.print_plain()
        display.print_success("Cleanup complete!")
        display.print_plain()
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
            "Interrupted. A deletion already started keeps running in CloudFormation."
        )
        return 130


if __name__ == "__main__":
    sys.exit(main())
