"""
Package exports
"""

# Local
from . import config, status
from .deploy_manager import DeployManagerBase, DryRunDeployManager
from .document import (
    access_field,
    access_field_object,
    create_field,
    get_or_create_field,
    recursive_create_field,
)
from .exceptions import (
    MapperError,
    MapperExpectedError,
    MapperFatalError,
    assert_cluster,
    assert_config,
)
from .managed_object import ManagedObject
from .mapper import Direction, Mapper, collapse, expand
from .repository import ObjectRepository
from .schema import MappingSchema
from .session import MappingSession
from .translate import Translator
