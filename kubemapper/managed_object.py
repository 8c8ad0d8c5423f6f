"""
Helper object to represent a kubernetes object taking part in a mapping
"""
# Standard
from typing import NamedTuple, Optional
import copy

# Local
from .constants import MAIN_NAMESPACE


class ObjectKey(NamedTuple):
    """The identity of an object within a single reconciliation"""

    kind: str
    namespace: Optional[str]
    name: str


class ManagedObject:
    """Thin handle over the dict representation of a kubernetes object. All
    properties read through to the definition so that the handle never goes
    stale when the definition is updated.
    """

    def __init__(self, definition: dict):
        self.definition = definition
        assert isinstance(definition, dict), "Object definition must be a dict"
        assert self.kind is not None, "No kind found"
        assert self.api_version is not None, "No apiVersion found"

    @classmethod
    def from_parts(
        cls,
        api_version: str,
        kind: str,
        name: Optional[str] = None,
        namespace: Optional[str] = MAIN_NAMESPACE,
    ) -> "ManagedObject":
        """Create a skeleton object holding only its type and identity"""
        metadata = {"namespace": namespace}
        if name is not None:
            metadata["name"] = name
        return cls({"apiVersion": api_version, "kind": kind, "metadata": metadata})

    ## Properties ##############################################################

    @property
    def kind(self) -> Optional[str]:
        return self.definition.get("kind")

    @property
    def api_version(self) -> Optional[str]:
        return self.definition.get("apiVersion")

    @property
    def group(self) -> str:
        """The API group, empty for the core group"""
        if "/" in self.api_version:
            return self.api_version.split("/", 1)[0]
        return ""

    @property
    def version(self) -> str:
        return self.api_version.rsplit("/", 1)[-1]

    @property
    def metadata(self) -> dict:
        return self.definition.setdefault("metadata", {})

    @property
    def name(self) -> Optional[str]:
        return self.metadata.get("name")

    @name.setter
    def name(self, name: str):
        self.metadata["name"] = name

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.get("namespace")

    @namespace.setter
    def namespace(self, namespace: str):
        self.metadata["namespace"] = namespace

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(kind=self.kind, namespace=self.namespace, name=self.name)

    ## Helpers #################################################################

    def is_type(self, group: str, version: str, kind: str) -> bool:
        """Check whether this object is of the given group/version/kind"""
        return (self.group, self.version, self.kind) == (group, version, kind)

    def copy(self) -> "ManagedObject":
        """Deep copy of the handle and its definition"""
        return ManagedObject(copy.deepcopy(self.definition))

    def get(self, *args, **kwargs):
        """Pass get calls to the objects definition"""
        return self.definition.get(*args, **kwargs)

    def __str__(self):
        return f"{self.api_version}/{self.kind}/{self.namespace}/{self.name}"

    def __repr__(self):
        return str(self)

    def __hash__(self):
        """Hash explicitly excludes the definition so that the object's
        identifier in a map is based only on its identity in the cluster
        """
        return hash(self.key)

    def __eq__(self, other):
        if not isinstance(other, ManagedObject):
            return NotImplemented
        return self.key == other.key and self.definition == other.definition
