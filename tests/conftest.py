import textwrap

import pytest

SAMPLE_PARAMETERS = """\
StackName: dev-stack
Region: eu-west-1
Parameters:
  VSCodeUser: ec2-user
  GitUserName: "Jane Doe"
  GitUserEmail: 'jane@example.com'
  TowerAccessToken: secret-token
  InstanceType: t3.xlarge
  InstanceVolumeSize: 0100
  RepoUrl:
  MyIPCidrRange: 10.0.0.0/8
"""


@pytest.fixture
def write_params(tmp_path):
    """Write a parameters file and return its path."""

    def _write(content=SAMPLE_PARAMETERS, name="cfn-stack-parameters.yaml"):
        path = tmp_path / name
        path.write_text(textwrap.dedent(content), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def template_file(tmp_path):
    path = tmp_path / "nf-core-vscode-server-ssh.yaml"
    path.write_text("AWSTemplateFormatVersion: '2010-09-09'\nResources: {}\n")
    return str(path)
