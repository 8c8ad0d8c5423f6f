"""
The DeployManager is the abstraction in charge of interacting with the
kubernetes cluster to look up the objects references point at, to persist the
objects produced while expanding references, and to record status.
"""

# Local
from .base import DeployManagerBase
from .dry_run_deploy_manager import DryRunDeployManager
