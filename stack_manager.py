"""
CloudFormation client for the VS Code Server stack.

Wraps the handful of CloudFormation, S3 and STS calls the deploy and cleanup
commands need, all scoped to one StackIdentity.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import boto3
from botocore.exceptions import ClientError

from stack_config import StackIdentity
from stack_errors import StackOperationError
from stack_monitor import StackEvent

# Largest template CloudFormation accepts inline as TemplateBody
TEMPLATE_BODY_LIMIT = 51200
DEFAULT_CAPABILITIES = ("CAPABILITY_IAM",)
_MISSING_BUCKET_CODES = ("404", "NoSuchBucket", "NotFound")


class Operation(Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class StackOutput:
    key: str
    value: str
    description: Optional[str] = None

    @classmethod
    def from_api(cls, output: dict) -> "StackOutput":
        return cls(
            key=output["OutputKey"],
            value=output.get("OutputValue", ""),
            description=output.get("Description"),
        )

    def as_dict(self) -> Dict[str, str]:
        data = {"OutputKey": self.key, "OutputValue": self.value}
        if self.description:
            data["Description"] = self.description
        return data


class StackManager:
    """Issues CloudFormation operations for a single stack."""

    def __init__(self, identity: StackIdentity, profile: Optional[str] = None):
        """Initialize the stack manager.

        Args:
            identity: Stack name and region
            profile: AWS profile name to use for authentication
        """
        self.identity = identity
        self.profile = profile
        self.logger = logging.getLogger(__name__)

        if profile:
            self.session = boto3.Session(profile_name=profile)
            self.logger.info(f"Using AWS profile: {profile}")
        else:
            self.session = boto3.Session()
            self.logger.info(
                "Using default AWS credentials (environment variables or default profile)"
            )

        region = identity.region
        self.cfn_client = self.session.client("cloudformation", region_name=region)
        self.s3_client = self.session.client("s3", region_name=region)
        self.sts_client = self.session.client("sts", region_name=region)

    @property
    def stack_name(self) -> str:
        return self.identity.name

    def stack_exists(self) -> bool:
        """Return True if describe_stacks succeeds for the stack.

        Only used to choose between create and update. Nothing stops the
        stack from appearing or vanishing between this check and submit().
        """
        try:
            self.cfn_client.describe_stacks(StackName=self.stack_name)
            return True
        except ClientError as e:
            self.logger.debug(f"describe_stacks({self.stack_name}) failed: {e}")
            return False

    def submit(
        self,
        operation: Operation,
        template_body: str,
        parameters: Iterable[Tuple[str, str]],
        template_name: str = "template.yaml",
        capabilities: Sequence[str] = DEFAULT_CAPABILITIES,
    ) -> str:
        """Start a create or update without waiting for it to finish.

        Args:
            operation: Operation.CREATE or Operation.UPDATE
            template_body: Template document text
            parameters: (key, value) pairs in submission order
            template_name: File name used for the S3 key when the template
                is too large to send inline
            capabilities: Capabilities acknowledged for the stack

        Returns:
            The stack id reported by CloudFormation

        Raises:
            StackOperationError: If CloudFormation or S3 rejects the request
        """
        request = {
            "StackName": self.stack_name,
            "Parameters": [
                {"ParameterKey": key, "ParameterValue": value} for key, value in parameters
            ],
            "Capabilities": list(capabilities),
        }

        try:
            request.update(self._template_argument(template_body, template_name))
            if operation is Operation.CREATE:
                response = self.cfn_client.create_stack(**request)
            else:
                response = self.cfn_client.update_stack(**request)
        except ClientError as e:
            self.logger.error(f"Failed to {operation.value} stack {self.stack_name}: {e}")
            raise StackOperationError(str(e)) from e

        stack_id = response["StackId"]
        self.logger.info(f"Stack {operation.value} initiated: {stack_id}")
        return stack_id

    def _template_argument(self, template_body: str, template_name: str) -> Dict[str, str]:
        size = len(template_body.encode("utf-8"))
        if size > TEMPLATE_BODY_LIMIT:
            self.logger.info(
                f"Template is {size} bytes (limit {TEMPLATE_BODY_LIMIT}), uploading to S3"
            )
            return {"TemplateURL": self.upload_template(template_body, template_name)}
        return {"TemplateBody": template_body}

    def template_bucket_name(self) -> str:
        account_id = self.sts_client.get_caller_identity()["Account"]
        return f"cfn-templates-{account_id}-{self.identity.region}"

    def upload_template(self, template_body: str, template_name: str) -> str:
        """Upload a template to the per-account bucket and return its URL."""
        bucket = self.template_bucket_name()
        self._ensure_bucket(bucket)

        key = f"{self.stack_name}/{template_name}"
        self.s3_client.put_object(Bucket=bucket, Key=key, Body=template_body.encode("utf-8"))
        url = f"https://{bucket}.s3.{self.identity.region}.amazonaws.com/{key}"
        self.logger.info(f"Uploaded template to {url}")
        return url

    def _ensure_bucket(self, bucket: str) -> None:
        try:
            self.s3_client.head_bucket(Bucket=bucket)
            return
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") not in _MISSING_BUCKET_CODES:
                raise

        self.logger.info(f"Creating template bucket: {bucket}")
        if self.identity.region == "us-east-1":
            self.s3_client.create_bucket(Bucket=bucket)
        else:
            self.s3_client.create_bucket(
                Bucket=bucket,
                CreateBucketConfiguration={"LocationConstraint": self.identity.region},
            )

    def delete(self) -> None:
        """Start stack deletion without waiting for it to finish.

        Raises:
            StackOperationError: If CloudFormation rejects the request
        """
        try:
            self.cfn_client.delete_stack(StackName=self.stack_name)
        except ClientError as e:
            self.logger.error(f"Failed to delete stack {self.stack_name}: {e}")
            raise StackOperationError(str(e)) from e
        self.logger.info(f"Stack deletion initiated: {self.stack_name}")

    def get_stack_status(self) -> Optional[str]:
        """Current stack status, or None if the stack cannot be described."""
        try:
            response = self.cfn_client.describe_stacks(StackName=self.stack_name)
        except ClientError as e:
            self.logger.debug(f"No status for {self.stack_name}: {e}")
            return None

        stacks = response.get("Stacks", [])
        if not stacks:
            return None
        return stacks[0].get("StackStatus")

    def get_events_since(self, cursor: datetime) -> List[StackEvent]:
        """Events newer than cursor, oldest first.

        CloudFormation returns events newest first, so paging stops at the
        first event at or before the cursor.
        """
        new_events = []
        paginator = self.cfn_client.get_paginator("describe_stack_events")
        try:
            for page in paginator.paginate(StackName=self.stack_name):
                for raw_event in page.get("StackEvents", []):
                    if raw_event["Timestamp"] <= cursor:
                        new_events.reverse()
                        return new_events
                    new_events.append(StackEvent.from_api(raw_event))
        except ClientError as e:
            self.logger.warning(f"Error reading events for {self.stack_name}: {e}")
            return []

        new_events.reverse()
        return new_events

    def get_outputs(self) -> List[StackOutput]:
        """Outputs of the stack, in the order CloudFormation lists them.

        Raises:
            StackOperationError: If the stack cannot be described
        """
        try:
            response = self.cfn_client.describe_stacks(StackName=self.stack_name)
        except ClientError as e:
            self.logger.error(f"Failed to read outputs for {self.stack_name}: {e}")
            raise StackOperationError(str(e)) from e

        outputs = response["Stacks"][0].get("Outputs", [])
        return [StackOutput.from_api(output) for output in outputs]

    def list_resources(self) -> List[Dict[str, str]]:
        """Resources currently in the stack as logical_id/resource_type dicts."""
        try:
            response = self.cfn_client.describe_stack_resources(StackName=self.stack_name)
        except ClientError as e:
            self.logger.warning(f"Failed to list resources for {self.stack_name}: {e}")
            return []

        return [
            {
                "logical_id": resource["LogicalResourceId"],
                "resource_type": resource["ResourceType"],
            }
            for resource in response.get("StackResources", [])
        ]
