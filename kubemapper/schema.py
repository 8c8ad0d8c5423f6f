"""
This module holds the mapping schema: the declarative description of how the
fields of a kubernetes custom resource correspond to the fields of an API
document.

The schema is a simplified openapi "properties" tree. Each node is one of

* an object node with nested "properties"
* an array node whose "items" describe how to map each element
* a reference node carrying both an "x-kubernetes-mapping" and an
  "x-openapi-mapping" extension, describing a field whose value lives in
  another kubernetes object

For example, a Secret backed api key looks like:

    properties:
      spec:
        properties:
          credentials:
            properties:
              apiKeyRef:
                x-kubernetes-mapping:
                  nameSelector: .name
                  propertySelectors: [$.data.#]
                  type: {kind: Secret, resource: secrets, version: v1}
                x-openapi-mapping:
                  property: .apiKey
                  type: string
"""

# Standard
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple
import copy

# Third Party
import yaml

# First Party
import alog

# Local
from . import config
from .constants import (
    ITEMS,
    PROPERTIES,
    XPATH_ROOT,
    X_KUBERNETES_MAPPING,
    X_OPENAPI_MAPPING,
)
from .document import as_path, fields_of
from .exceptions import ConfigError, UnsupportedSchemaShapeError

log = alog.use_channel("SCHMA")

## Reference Mappings ##########################################################


def resolve_xpath(xpath: str) -> List[str]:
    """Parse a "$.a.b" or ".a.b" locator into a field path"""
    if xpath.startswith(XPATH_ROOT + "."):
        xpath = xpath[len(XPATH_ROOT) :]
    return as_path(xpath)


@dataclass(frozen=True)
class KubeType:
    """The kubernetes type a reference points at"""

    kind: str = ""
    group: str = ""
    version: str = ""
    resource: str = ""

    @property
    def api_version(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"

    @property
    def gvk(self) -> str:
        return f"{self.api_version}, Kind={self.kind}"

    @property
    def gvr(self) -> str:
        return f"{self.api_version}/{self.resource}"


@dataclass(frozen=True)
class KubeMapping:
    """The kubernetes side of a reference

    name_selector locates the referenced object's name inside the reference
    value, properties are locators of the linked value on the referenced
    object, and property_selectors are locators where the value is written
    (and read back from) on generated objects.
    """

    name_selector: str = ""
    property_selectors: Tuple[str, ...] = ()
    properties: Tuple[str, ...] = ()
    type: KubeType = field(default_factory=KubeType)

    @classmethod
    def from_dict(cls, data: dict) -> "KubeMapping":
        type_data = data.get("type") or {}
        if not isinstance(type_data, dict):
            raise UnsupportedSchemaShapeError(
                f"{X_KUBERNETES_MAPPING}.type must be an object"
            )
        return cls(
            name_selector=data.get("nameSelector") or "",
            property_selectors=tuple(_str_list(data, "propertySelectors")),
            properties=tuple(_str_list(data, "properties")),
            type=KubeType(
                kind=type_data.get("kind") or "",
                group=type_data.get("group") or "",
                version=type_data.get("version") or "",
                resource=type_data.get("resource") or "",
            ),
        )


@dataclass(frozen=True)
class OpenAPIMapping:
    """The API side of a reference: which API property holds the value"""

    locator: str = ""
    type: str = ""

    @property
    def target_path(self) -> List[str]:
        return resolve_xpath(self.locator)

    @classmethod
    def from_dict(cls, data: dict) -> "OpenAPIMapping":
        return cls(
            locator=data.get("property") or "", type=data.get("type") or ""
        )


@dataclass(frozen=True)
class ReferenceMapping:
    """A schema leaf whose value is obtained by resolving another object"""

    kube: KubeMapping
    openapi: OpenAPIMapping

    @classmethod
    def from_node(cls, node: dict) -> "ReferenceMapping":
        kube_data = node.get(X_KUBERNETES_MAPPING)
        openapi_data = node.get(X_OPENAPI_MAPPING)
        if not isinstance(kube_data, dict) or not isinstance(openapi_data, dict):
            raise UnsupportedSchemaShapeError(
                f"reference extensions must be objects, got {type(kube_data).__name__}"
                f" and {type(openapi_data).__name__}"
            )
        return cls(
            kube=KubeMapping.from_dict(kube_data),
            openapi=OpenAPIMapping.from_dict(openapi_data),
        )


## Mapping Schema ##############################################################


class MappingSchema:
    """Immutable, validated mapping schema for one resource kind and version"""

    def __init__(self, document: dict):
        """Construct from the parsed schema document

        Args:
            document:  dict
                The schema tree. It is copied so later changes by the caller
                have no effect.
        """
        if not isinstance(document, dict):
            raise UnsupportedSchemaShapeError(
                f"mapping schema must be an object, got {type(document).__name__}"
            )
        self._document = copy.deepcopy(document)
        self._references: Dict[int, ReferenceMapping] = {}
        self._validate_node(self._document, [])
        log.debug2("Loaded mapping schema with %d references", len(self._references))

    @classmethod
    def from_yaml(cls, text: str) -> "MappingSchema":
        """Parse a schema from the yaml (or json) text of an annotation"""
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as err:
            raise ConfigError(f"failed to parse api mappings: {err}") from err
        return cls(document or {})

    @classmethod
    def from_annotations(
        cls,
        annotations: Optional[dict],
        annotation_name: Optional[str] = None,
    ) -> Optional["MappingSchema"]:
        """Load the schema from a CRD's annotations

        Returns:
            schema:  Optional[MappingSchema]
                The parsed schema or None if the annotation is absent or empty
        """
        annotation_name = annotation_name or config.api_mappings_annotation
        text = (annotations or {}).get(annotation_name)
        if not text:
            log.debug("No %s annotation found", annotation_name)
            return None
        return cls.from_yaml(text)

    ## Properties ##############################################################

    @property
    def document(self) -> dict:
        """A copy of the underlying schema document"""
        return copy.deepcopy(self._document)

    ## Public ##################################################################

    @staticmethod
    def is_reference(node: Any) -> bool:
        """Whether a schema node declares a reference"""
        return (
            isinstance(node, dict)
            and node.get(X_KUBERNETES_MAPPING) is not None
            and node.get(X_OPENAPI_MAPPING) is not None
        )

    def reference(self, node: dict) -> ReferenceMapping:
        """The parsed reference mapping of a reference node"""
        mapping = self._references.get(id(node))
        if mapping is None:
            mapping = ReferenceMapping.from_node(node)
        return mapping

    def properties_at(self, *fields: str) -> Optional[dict]:
        """The "properties" of the object node reached by following the given
        fields from the root, or None if the schema does not describe it
        """
        node = self._document
        for name in fields:
            node = (node.get(PROPERTIES) or {}).get(name)
            if not isinstance(node, dict):
                return None
        props = node.get(PROPERTIES)
        if not isinstance(props, dict):
            return None
        return props

    def iter_references(
        self, *fields: str
    ) -> Iterator[Tuple[List[str], str, ReferenceMapping]]:
        """Yield (path, name, mapping) for every reference below the given
        fields. Array items contribute an ARRAY_ELEMENT free path made of the
        array field name only.
        """
        props = self.properties_at(*fields)
        if props is not None:
            yield from self._iter_references(props, [])

    def reference_types(self, *fields: str) -> Set[KubeType]:
        """The set of kubernetes types referenced below the given fields"""
        return {mapping.kube.type for _, _, mapping in self.iter_references(*fields)}

    def strip_references(self, doc: dict, *fields: str) -> dict:
        """Remove every reference field from a document shaped like the node
        at the given fields. The document is modified in place and returned.
        """
        props = self.properties_at(*fields)
        if props is not None:
            self._strip(doc, props)
        return doc

    ## Implementation Details ##################################################

    def _validate_node(self, node: Any, path: List[str]):
        if not isinstance(node, dict):
            raise UnsupportedSchemaShapeError(
                f"schema node at {path} must be an object, got {type(node).__name__}"
            )
        if self.is_reference(node):
            if PROPERTIES in node:
                raise UnsupportedSchemaShapeError(
                    f"reference at {path} can not also declare {PROPERTIES}"
                )
            self._references[id(node)] = ReferenceMapping.from_node(node)
            return
        props = node.get(PROPERTIES)
        if props is not None:
            if not isinstance(props, dict):
                raise UnsupportedSchemaShapeError(
                    f"{PROPERTIES} at {path} must be an object"
                )
            for name in fields_of(props):
                self._validate_node(props[name], path + [name])
        items = node.get(ITEMS)
        if items is not None:
            self._validate_node(items, path + [ITEMS])

    def _iter_references(self, props: dict, path: List[str]):
        for name in fields_of(props):
            node = props[name]
            if self.is_reference(node):
                yield path + [name], name, self.reference(node)
                continue
            if isinstance(node.get(PROPERTIES), dict):
                yield from self._iter_references(node[PROPERTIES], path + [name])
            items = node.get(ITEMS)
            if isinstance(items, dict) and isinstance(items.get(PROPERTIES), dict):
                yield from self._iter_references(items[PROPERTIES], path + [name])

    def _strip(self, doc: dict, props: dict):
        for name, node in props.items():
            if self.is_reference(node):
                doc.pop(name, None)
                continue
            value = doc.get(name)
            if isinstance(value, dict) and isinstance(node.get(PROPERTIES), dict):
                self._strip(value, node[PROPERTIES])
            elif isinstance(value, list):
                item_props = (node.get(ITEMS) or {}).get(PROPERTIES)
                if isinstance(item_props, dict):
                    for item in value:
                        if isinstance(item, dict):
                            self._strip(item, item_props)


def _str_list(data: dict, key: str) -> List[str]:
    values = data.get(key) or []
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise UnsupportedSchemaShapeError(
            f"{X_KUBERNETES_MAPPING}.{key} must be a list of strings"
        )
    return values
