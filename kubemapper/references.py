"""
This module resolves reference mappings in both directions.

Expanding a reference takes a value found in an API shaped document (for
example an api key or a project id), stores it in a related kubernetes object
(a Secret, a Group, ...) and replaces it in the kubernetes document with a
reference {"name": <object name>, "key": <api property>} to that object.

Collapsing a reference does the opposite: it follows the reference to the
related object in the repository, reads the linked value back and writes it
at the API property path.
"""

# Standard
from typing import Any, Callable, Dict, List, NamedTuple, Optional
import base64
import binascii

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from . import config
from .constants import (
    ENTRY_FIELD,
    PROPERTY_SELECTOR_SUFFIX,
    REF_KEY,
    REF_NAME,
    SECRETS_GVR,
    X_KUBERNETES_MAPPING,
)
from .document import (
    access_field,
    as_path,
    base,
    create_field,
    recursive_create_field,
    type_name,
)
from .exceptions import (
    FieldNotFoundError,
    ReferenceResolutionError,
    TypeMismatchError,
    UnsupportedSchemaShapeError,
)
from .managed_object import ManagedObject
from .repository import ObjectRepository
from .schema import ReferenceMapping, resolve_xpath
from .utils import prefixed_name

log = alog.use_channel("REFS")

# Sentinel for a linked value that could not be found
_MISSING = "__MISSING__"

## Codecs ######################################################################


class Codec(NamedTuple):
    """Conversion of a value between its API form and the form it is stored
    in on a kubernetes object
    """

    encode: Callable[[Any], Any]
    decode: Callable[[Any], Any]


def _secret_encode(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeMismatchError(expected="str", actual=type_name(value))
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _secret_decode(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeMismatchError(expected="str", actual=type_name(value))
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as err:
        raise ReferenceResolutionError(
            f"failed to decode secret value: {err}"
        ) from err


# Codecs keyed by the group/version/resource of the referenced type
CODECS: Dict[str, Codec] = {
    SECRETS_GVR: Codec(encode=_secret_encode, decode=_secret_decode),
}


## Reference ###################################################################


class Reference:
    """A reference mapping bound to the name of the field that declares it"""

    def __init__(
        self,
        name: str,
        mapping: ReferenceMapping,
        optional_expansions: Optional[List[str]] = None,
    ):
        """Construct with the declaring field name and its parsed mapping

        Args:
            name:  str
                The name of the kubernetes side reference field
                (e.g. "apiKeyRef")
            mapping:  ReferenceMapping
                The reference mapping from the schema
            optional_expansions:  Optional[List[str]]
                Reference names that may be skipped when they can not be
                expanded. Defaults to the library config.
        """
        self.name = name
        self.mapping = mapping
        self.optional_expansions = (
            config.optional_expansions
            if optional_expansions is None
            else optional_expansions
        )

    @property
    def codec(self) -> Optional[Codec]:
        return CODECS.get(self.mapping.kube.type.gvr)

    @property
    def api_property(self) -> str:
        """The final segment of the API property this reference stands for"""
        return base(self.mapping.openapi.target_path)

    ## Expand ##################################################################

    def expand(self, repository: ObjectRepository, path: List[str], obj: dict):
        """Move the API value next to this reference into a related object and
        point the reference at it

        Args:
            repository:  ObjectRepository
                The working set to find and add related objects in
            path:  List[str]
                Path of this reference relative to the mapped root, used to
                derive a stable name for generated objects
            obj:  dict
                The object holding both the API value and the reference field
        """
        path = self._path_to_expand(path)
        try:
            raw_value = access_field(obj, [self.api_property])
        except FieldNotFoundError:
            log.debug3("No value for %s at %s", self.name, path)
            return

        existing = self._find_matching_dependency(repository, raw_value)
        if existing is not None:
            log.debug2("Reference %s reuses existing %s", self.name, existing)
            create_field(obj, {REF_NAME: existing.name}, [self.name])
            return

        codec = self.codec
        value = codec.encode(raw_value) if codec else raw_value
        name = self._name_for(repository.main.name, path)
        kube_type = self.mapping.kube.type
        current = repository.find(name, kind=kube_type.kind)
        dependency = (
            current.copy()
            if current is not None
            else ManagedObject.from_parts(kube_type.api_version, kube_type.kind, name)
        )
        if not self._set_at_property_selectors(dependency, value):
            if self.name in self.optional_expansions:
                log.debug2("Skipping optional expansion of %s", self.name)
                return
            raise UnsupportedSchemaShapeError(
                f"no {X_KUBERNETES_MAPPING}.propertySelectors to store {self.name}"
            )

        if current is None or DeepDiff(current.definition, dependency.definition):
            repository.add(dependency)
        else:
            log.debug3("Dependency %s already up to date", dependency)

        ref_data = {REF_NAME: dependency.name}
        if self.mapping.openapi.locator:
            ref_data[REF_KEY] = self.api_property
        create_field(obj, ref_data, [self.name])

    ## Collapse ################################################################

    def collapse(self, repository: ObjectRepository, path: List[str], obj: dict):
        """Follow this reference and write the linked value at the API
        property path of the given object

        Args:
            repository:  ObjectRepository
                The working set holding the referenced object
            path:  List[str]
                Path of this reference relative to the mapped root
            obj:  dict
                The object holding the reference field
        """
        try:
            reference = access_field(obj, [self.name], dict)
        except FieldNotFoundError:
            log.debug3("No reference for %s at %s", self.name, path)
            return
        if not reference:
            return

        target_path = self.mapping.openapi.target_path
        key = reference.get(REF_KEY)
        if not isinstance(key, str) or not key:
            key = base(target_path)
        value = self.fetch_referenced_value(repository, key, reference)
        log.debug3("Collapsed %s into %s", path, target_path)
        recursive_create_field(obj, value, target_path)

    def fetch_referenced_value(
        self,
        repository: ObjectRepository,
        key: str,
        reference: dict,
    ) -> Any:
        """Locate the referenced object and read the linked value from it

        Args:
            repository:  ObjectRepository
                The working set to search
            key:  str
                The key completing property selectors that end in ".#"
            reference:  dict
                The reference value, e.g. {"name": "my-secret", "key": "apiKey"}

        Returns:
            value:  Any
                The decoded linked value
        """
        kube = self.mapping.kube
        if not kube.name_selector:
            raise UnsupportedSchemaShapeError(
                f"cannot solve reference {self.name} without a "
                f"{X_KUBERNETES_MAPPING}.nameSelector"
            )
        try:
            ref_name = access_field(reference, as_path(kube.name_selector), str)
        except FieldNotFoundError as err:
            raise ReferenceResolutionError(
                f"reference {self.name} has no name at {kube.name_selector!r}"
            ) from err

        resource = repository.find(ref_name, kind=kube.type.kind or None)
        if resource is None:
            raise ReferenceResolutionError(
                f"failed to find Kubernetes resource {ref_name!r} for {self.name}"
            )
        if kube.type.kind and not resource.is_type(
            kube.type.group, kube.type.version, kube.type.kind
        ):
            raise ReferenceResolutionError(
                f"resource {ref_name!r} had to be a {kube.type.gvk!r} but got "
                f"'{resource.api_version}, Kind={resource.kind}'"
            )

        value = self._fetch_from_properties(resource)
        if value is _MISSING:
            value = self._fetch_from_property_selectors(resource, key)
        if value is _MISSING:
            raise ReferenceResolutionError(
                f"resource {ref_name!r} holds no value for {self.name}"
            )
        codec = self.codec
        return codec.decode(value) if codec else value

    ## Implementation Details ##################################################

    def _path_to_expand(self, path_hint: List[str]) -> List[str]:
        """The reference path hint points at the reference field itself. The
        API value lives next to it under the API property name.
        """
        path = list(path_hint)
        path[-1] = self.api_property
        return path

    def _name_for(self, prefix: str, path: List[str]) -> str:
        """Stable name of a generated dependency. The spec and its entry are
        expanded separately and must produce the same name.
        """
        if path and path[0] == ENTRY_FIELD:
            path = path[1:]
        return prefixed_name(
            prefix, *path, hash_length=config.generated_name_hash_length
        )

    def _find_matching_dependency(
        self,
        repository: ObjectRepository,
        raw_value: Any,
    ) -> Optional[ManagedObject]:
        """Find a tracked object of the referenced type whose properties
        already hold the given API value
        """
        kube = self.mapping.kube
        if not kube.properties:
            return None
        for dependency in repository.objects():
            if not dependency.is_type(kube.type.group, kube.type.version, kube.type.kind):
                continue
            for prop in kube.properties:
                try:
                    value = access_field(dependency.definition, resolve_xpath(prop))
                except FieldNotFoundError:
                    continue
                if value == raw_value:
                    return dependency
        return None

    def _set_at_property_selectors(self, dependency: ManagedObject, value: Any) -> bool:
        """Write the value at the first property selector of the mapping"""
        for selector in self.mapping.kube.property_selectors:
            path = resolve_xpath(self._complete_selector(selector, self.api_property))
            if not path:
                continue
            recursive_create_field(dependency.definition, value, path)
            log.debug3("Stored %s at %s of %s", self.name, path, dependency)
            return True
        return False

    def _fetch_from_properties(self, resource: ManagedObject) -> Any:
        for prop in self.mapping.kube.properties:
            try:
                return access_field(resource.definition, resolve_xpath(prop))
            except FieldNotFoundError:
                continue
        return _MISSING

    def _fetch_from_property_selectors(self, resource: ManagedObject, key: str) -> Any:
        for selector in self.mapping.kube.property_selectors:
            path = resolve_xpath(self._complete_selector(selector, key))
            try:
                return access_field(resource.definition, path)
            except FieldNotFoundError:
                continue
        return _MISSING

    @staticmethod
    def _complete_selector(selector: str, key: str) -> str:
        if selector.endswith(PROPERTY_SELECTOR_SUFFIX):
            return f"{selector[:-len(PROPERTY_SELECTOR_SUFFIX)]}.{key}"
        return selector
