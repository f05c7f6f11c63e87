"""
Parameter file loading for the VS Code Server stack.

The parameter file is a small YAML document:

    StackName: nf-core-vscode-server
    Region: eu-west-1
    Parameters:
      VSCodeUser: ec2-user
      InstanceType: t3.xlarge
      MyIPCidrRange: 0.0.0.0/0

It is flattened into a ParameterSet keyed by dotted paths
("StackName", "Parameters.InstanceType", ...). All scalars are kept as the
exact strings written in the file.
"""

import argparse
import logging
import sys
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml

from stack_errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PARAMS_FILE = "cfn-stack-parameters.yaml"
DEFAULT_TEMPLATE_FILE = "nf-core-vscode-server-ssh.yaml"
DEFAULT_REGION = "us-east-1"
DEFAULT_LOG_FILE = "cfn_stack.log"
DEFAULT_POLL_INTERVAL = 5
KEY_SEPARATOR = "."

STACK_NAME_KEY = "StackName"
REGION_KEY = "Region"
TEMPLATE_FILE_KEY = "TemplateFile"
PROFILE_KEY = "Profile"
OVERRIDE_IP_KEY = "OverrideIpFromCaller"
PARAMETERS_SECTION = "Parameters"
IP_PARAMETER_KEY = "MyIPCidrRange"

_TRUE_VALUES = ("true", "yes", "on", "1")
_FALSE_VALUES = ("false", "no", "off", "0")


class ParameterSet(Mapping):
    """Read-only mapping of dotted key paths to string values."""

    def __init__(self, values: Dict[str, str]):
        self._values = OrderedDict(values)

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParameterSet({dict(self._values)!r})"

    def section(self, name: str) -> "OrderedDict[str, str]":
        """Return the direct children of a nesting header, in file order."""
        prefix = name + KEY_SEPARATOR
        children = OrderedDict()
        for key, value in self._values.items():
            if key.startswith(prefix):
                child = key[len(prefix):]
                if KEY_SEPARATOR not in child:
                    children[child] = value
        return children


def flatten_document(document: Dict[str, Any], prefix: str = "") -> Dict[str, str]:
    """Flatten nested mappings into dotted key paths.

    Args:
        document: Mapping produced by yaml.BaseLoader (all scalars are str)
        prefix: Key path of the enclosing mapping

    Returns:
        Ordered dictionary of key path to scalar value

    Raises:
        ConfigurationError: If the document contains a list
    """
    flat = OrderedDict()
    for key, value in document.items():
        path = f"{prefix}{KEY_SEPARATOR}{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten_document(value, path))
        elif isinstance(value, list):
            raise ConfigurationError(f"Lists are not supported in the parameter file: {path}")
        elif value is None or value == "":
            # Bare header with no children, e.g. "Parameters:" left empty
            continue
        else:
            flat[path] = value
    return flat


def load_parameters(params_file: str) -> ParameterSet:
    """Load and flatten a parameter file.

    Args:
        params_file: Path to the YAML parameter file

    Returns:
        Flattened ParameterSet

    Raises:
        ConfigurationError: If the file is missing, empty, not a mapping,
            not valid YAML, or has no StackName
    """
    try:
        with open(params_file, "r", encoding="utf-8") as f:
            document = yaml.load(f, Loader=yaml.BaseLoader)
    except FileNotFoundError:
        raise ConfigurationError(f"Parameters file not found: {params_file}")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read parameters file {params_file}: {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in parameters file {params_file}: {e}")

    if not document:
        raise ConfigurationError(f"Parameters file is empty: {params_file}")
    if not isinstance(document, dict):
        raise ConfigurationError(f"Parameters file must contain a mapping: {params_file}")

    params = ParameterSet(flatten_document(document))
    if not params.get(STACK_NAME_KEY):
        raise ConfigurationError(f"{STACK_NAME_KEY} not found in parameters file")

    logger.info(f"Loaded {len(params)} parameter(s) from {params_file}")
    return params


@dataclass(frozen=True)
class StackIdentity:
    """Name and region that scope every CloudFormation call."""

    name: str
    region: str

    @classmethod
    def from_parameters(cls, params: ParameterSet) -> "StackIdentity":
        name = params.get(STACK_NAME_KEY)
        if not name:
            raise ConfigurationError(f"{STACK_NAME_KEY} not found in parameters file")

        region = params.get(REGION_KEY)
        if not region:
            logger.warning(f"Region not specified, using default: {DEFAULT_REGION}")
            region = DEFAULT_REGION
        return cls(name=name, region=region)

    @property
    def console_url(self) -> str:
        return (
            f"https://{self.region}.console.aws.amazon.com/cloudformation/home"
            f"?region={self.region}#/stacks"
        )


@dataclass
class DeploymentContext:
    """Everything one deploy run needs, threaded through the pipeline."""

    params_file: str
    identity: StackIdentity
    template_parameters: "OrderedDict[str, str]" = field(default_factory=OrderedDict)
    template_file: str = DEFAULT_TEMPLATE_FILE
    profile: Optional[str] = None
    override_ip: bool = True

    def set_parameter(self, key: str, value: str) -> None:
        self.template_parameters[key] = value

    def parameter_list(self) -> List[Tuple[str, str]]:
        """Template parameters in file order, skipping empty values."""
        return [(k, v) for k, v in self.template_parameters.items() if v]


def parse_bool(value: str, key: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{key} must be true or false, got '{value}'")


def load_context(
    params_file: str,
    template_file: Optional[str] = None,
    profile: Optional[str] = None,
    override_ip: Optional[bool] = None,
) -> DeploymentContext:
    """Build the deployment context from a parameter file.

    Command line values take precedence over the file; None means
    "not given on the command line".
    """
    params = load_parameters(params_file)
    identity = StackIdentity.from_parameters(params)

    if override_ip is None:
        raw = params.get(OVERRIDE_IP_KEY)
        override_ip = parse_bool(raw, OVERRIDE_IP_KEY) if raw is not None else True

    return DeploymentContext(
        params_file=params_file,
        identity=identity,
        template_parameters=params.section(PARAMETERS_SECTION),
        template_file=template_file or params.get(TEMPLATE_FILE_KEY, DEFAULT_TEMPLATE_FILE),
        profile=profile or params.get(PROFILE_KEY),
        override_ip=override_ip,
    )


def read_template(template_file: str) -> str:
    """Read the template body.

    Raises:
        ConfigurationError: If the file is missing or cannot be decoded as UTF-8
    """
    try:
        with open(template_file, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        raise ConfigurationError(f"Template file not found: {template_file}")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read template file {template_file}: {e}")


class StackArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def non_negative_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: '{value}'")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: '{value}'")
    return number


def make_parser(prog: str, description: str) -> argparse.ArgumentParser:
    """Create a parser with the options shared by every entry point."""
    parser = StackArgumentParser(prog=prog, description=description)
    parser.add_argument(
        "--param-file",
        "-p",
        default=DEFAULT_PARAMS_FILE,
        help=f"Path to YAML parameters file (default: {DEFAULT_PARAMS_FILE})",
    )
    return parser


def add_monitor_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by the commands that wait on the stack."""
    parser.add_argument("--profile", help="AWS profile name to use for authentication")
    parser.add_argument(
        "--poll-interval",
        type=non_negative_float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between status polls (default: {DEFAULT_POLL_INTERVAL})",
    )
    parser.add_argument(
        "--timeout",
        type=non_negative_float,
        default=None,
        help="Give up monitoring after this many seconds (default: wait indefinitely)",
    )
    parser.add_argument(
        "--log-file", default=DEFAULT_LOG_FILE, help=f"Log file path (default: {DEFAULT_LOG_FILE})"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")
