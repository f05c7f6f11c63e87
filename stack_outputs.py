"""Reporting and persistence of stack outputs."""

import json
import logging
from typing import List

import stack_display as display
from stack_manager import StackOutput

logger = logging.getLogger(__name__)

OUTPUTS_FILE = "stack-outputs.txt"


def save_outputs(outputs: List[StackOutput], output_file: str = OUTPUTS_FILE) -> str:
    """Write the raw outputs as JSON, replacing any previous file."""
    with open(output_file, "w", encoding="utf-8") as f:
        json.dump([output.as_dict() for output in outputs], f, indent=4)
    logger.info(f"Saved {len(outputs)} output(s) to {output_file}")
    return output_file


def report_outputs(outputs: List[StackOutput], output_file: str = OUTPUTS_FILE) -> str:
    """Show outputs on the console and save them.

    An empty list is only a warning; the file is still written.
    """
    display.print_info("Retrieving stack outputs...")
    if outputs:
        display.print_outputs(outputs)
    else:
        logger.info("Stack has no outputs")
        display.print_warning("No outputs available yet")

    save_outputs(outputs, output_file)
    display.print_success(f"Outputs saved to {output_file}")
    return output_file
