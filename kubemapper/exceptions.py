"""
This module implements custom exceptions
"""

# Standard
from typing import Optional, Sequence

## Base Error ##################################################################


class MapperError(Exception):
    """Base class for all kubemapper exceptions"""

    def __init__(self, message: str, is_fatal_error: bool):
        """Construct with a flag indicating whether this is a fatal error. This
        will be a static property of all children.
        """
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self):
        """Property indicating whether or not this error should signal a fatal
        state for the reconciliation
        """
        return self._is_fatal_error


## Fatal Errors ################################################################


class MapperFatalError(MapperError):
    """A MapperFatalError indicates a contract violation between a mapping
    schema and the documents it is applied to. Retrying the same mapping will
    fail the same way.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class DocumentError(MapperFatalError):
    """Base for errors raised while walking a document along a path"""

    def __init__(self, message: str = "", path: Optional[Sequence[str]] = None):
        self.path = list(path or [])
        super().__init__(message)


class NotObjectError(DocumentError):
    """The document node at a path was expected to be an object"""


class NotArrayError(DocumentError):
    """The document node at a path was expected to be an array"""


class NilObjectError(DocumentError):
    """An intermediate node along a path is explicitly null"""


class InvalidPathError(DocumentError):
    """The path itself can not be used for the requested operation"""


class TypeMismatchError(DocumentError):
    """The leaf value at a path does not have the expected type"""

    def __init__(
        self,
        expected: str,
        actual: str,
        path: Optional[Sequence[str]] = None,
    ):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"expected {expected} at {list(path or [])} but got {actual}", path
        )


class UnsupportedSchemaShapeError(MapperFatalError):
    """Exception raised when a mapping schema node is neither a plain field, a
    nested object, an array nor a reference
    """


class AmbiguousMatchError(MapperFatalError):
    """Exception raised in strict mode when more than one array element carries
    the key used to correlate it
    """


class SchemaValidationError(MapperFatalError):
    """Exception raised when an object does not conform to its CRD schema"""


class ConfigError(MapperFatalError):
    """Exception caused during usage of user-provided configuration"""


class ClusterError(MapperFatalError):
    """Exception caused when a cluster operation fails in an unexpected way"""


## Expected Errors #############################################################


class MapperExpectedError(MapperError):
    """A MapperExpectedError indicates a failure that aborts the current
    mapping but is expected to resolve in a subsequent reconciliation.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class FieldNotFoundError(MapperExpectedError):
    """A field or array element does not exist at the expected path"""

    def __init__(self, message: str = "", path: Optional[Sequence[str]] = None):
        self.path = list(path or [])
        super().__init__(message or f"path {self.path} not found")


class ReferenceResolutionError(MapperExpectedError):
    """The object or field a reference points to can not be located"""


## Assertions ##################################################################


def assert_config(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ConfigError. This should be
    used when a CRD or a mapping annotation does not hold what is required.
    """
    if not condition:
        raise ConfigError(message)


def assert_cluster(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ClusterError. This should
    be used when an operation in the cluster (such as fetching the
    dependencies of a resource) must succeed.
    """
    if not condition:
        raise ClusterError(message)
