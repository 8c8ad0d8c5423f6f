"""
The mapper walks a document alongside its mapping schema and resolves every
reference it finds, in one of two directions:

* EXPAND: API values found in a kubernetes shaped document are moved into
  related objects and replaced by references to them
* COLLAPSE: references in a kubernetes shaped document are followed and the
  linked values are written where the API expects them

Both directions share the same traversal. They differ only in how an array
element is correlated with its schema entry and in which operation is applied
to a reference once it is reached.
"""

# Standard
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence
import copy

# First Party
import alog

# Local
from . import config
from .constants import ITEMS, PROPERTIES
from .document import access_field, base, fields_of, type_name
from .exceptions import (
    AmbiguousMatchError,
    FieldNotFoundError,
    UnsupportedSchemaShapeError,
)
from .managed_object import ManagedObject
from .references import Reference
from .repository import ObjectRepository
from .schema import MappingSchema

log = alog.use_channel("MAPPR")


class Direction(Enum):
    """The direction of a mapping"""

    # API document -> kubernetes document
    EXPAND = "expand"

    # kubernetes document -> API document
    COLLAPSE = "collapse"


class Mapper:
    """A Mapper applies one mapping schema in one direction against one object
    repository
    """

    def __init__(
        self,
        direction: Direction,
        schema: MappingSchema,
        repository: ObjectRepository,
        strict_array_matching: Optional[bool] = None,
        optional_expansions: Optional[List[str]] = None,
    ):
        """Construct with the direction and the inputs shared by every call

        Args:
            direction:  Direction
                Whether references are expanded or collapsed
            schema:  MappingSchema
                The mapping schema for the resource kind and version
            repository:  ObjectRepository
                The working set references are resolved against
            strict_array_matching:  Optional[bool]
                If True, an array key carried by more than one element is an
                error rather than matching the first one. Defaults to the
                library config.
            optional_expansions:  Optional[List[str]]
                Reference names that may be skipped when they can not be
                expanded. Defaults to the library config.
        """
        self.direction = direction
        self.schema = schema
        self.repository = repository
        self.strict_array_matching = (
            config.strict_array_matching
            if strict_array_matching is None
            else strict_array_matching
        )
        self.optional_expansions = optional_expansions

    @property
    def expanding(self) -> bool:
        return self.direction == Direction.EXPAND

    ## Public ##################################################################

    def run(self, document: dict, *field_paths: Sequence[str]) -> List[ManagedObject]:
        """Map the document at each of the given field paths as a single unit

        The mapping is computed on a copy of the document inside a repository
        transaction. Only when every path maps successfully is the result
        written back into the given document, so a failure leaves both the
        document and the repository untouched.

        Args:
            document:  dict
                The document to map in place
            *field_paths:  Sequence[str]
                Paths from the document root to each object that should be
                mapped (e.g. ("spec", "v20250312")). Each path is also the
                path into the schema.

        Returns:
            added:  List[ManagedObject]
                All objects added to the repository so far
        """
        work = copy.deepcopy(document)
        with self.repository.transaction():
            for fields in field_paths:
                self.map_at(work, *fields)
        document.clear()
        document.update(work)
        return self.repository.added

    def map_at(self, document: dict, *fields: str):
        """Map the object found at the given fields of the document using the
        schema properties at the same fields. A schema that does not describe
        the fields, or a document without them, is a no-op.
        """
        props = self.schema.properties_at(*fields)
        if props is None:
            log.debug2("No mappings at %s", list(fields))
            return
        try:
            target = access_field(document, fields, dict)
        except FieldNotFoundError:
            log.debug2("Nothing to map at %s", list(fields))
            return
        log.debug("Mapping (%s) at %s", self.direction.value, list(fields))
        self.map_properties([], props, target)

    def map_properties(self, path: List[str], props: dict, obj: dict):
        """Map every schema property against the matching field of obj. Plain
        leaf fields are kept as they are.
        """
        for key in fields_of(props):
            node = props[key]
            sub_path = path + [key]
            if self.schema.is_reference(node):
                self.map_reference(sub_path, key, node, obj)
                continue
            try:
                raw_field = access_field(obj, [key])
            except FieldNotFoundError:
                log.debug4("Skipping absent optional field %s", sub_path)
                continue
            if PROPERTIES not in node and ITEMS not in node:
                log.debug4("Keeping plain field %s", sub_path)
                continue
            if isinstance(raw_field, list):
                self.map_array(sub_path, node, raw_field)
            elif isinstance(raw_field, dict):
                self.map_object(sub_path, key, node, raw_field)
            else:
                raise UnsupportedSchemaShapeError(
                    f"unsupported mapping of type {type_name(raw_field)} at {sub_path}"
                )

    def map_array(self, path: List[str], node: dict, items: List[Any]):
        """Correlate each schema item mapping with the array element carrying
        its key and map that element
        """
        item_props = (node.get(ITEMS) or {}).get(PROPERTIES)
        if not isinstance(item_props, dict):
            raise UnsupportedSchemaShapeError(
                f"array mapping at {path} has no {ITEMS}.{PROPERTIES}"
            )
        for map_name in fields_of(item_props):
            item_node = item_props[map_name]
            key = self._matching_key(map_name, item_node)
            entry = self._find_by_key(path, items, key)
            if entry is None:
                log.debug4("No element of %s carries %s", path, key)
                continue
            self.map_object(path + [key], map_name, item_node, entry)

    def map_object(self, path: List[str], map_name: str, node: dict, obj: dict):
        """Map an object against a nested properties node or a reference"""
        props = node.get(PROPERTIES)
        if props is not None:
            self.map_properties(path, props, obj)
        elif self.schema.is_reference(node):
            self.map_reference(path, map_name, node, obj)
        else:
            raise UnsupportedSchemaShapeError(
                f"unsupported extension at {path} with fields {fields_of(node)}"
            )

    def map_reference(self, path: List[str], map_name: str, node: dict, obj: dict):
        """Expand or collapse a single reference"""
        ref = Reference(
            map_name,
            self.schema.reference(node),
            optional_expansions=self.optional_expansions,
        )
        if self.expanding:
            ref.expand(self.repository, path, obj)
        else:
            ref.collapse(self.repository, path, obj)

    ## Implementation Details ##################################################

    def _matching_key(self, map_name: str, node: dict) -> str:
        """The field an array element must carry to correspond to a schema
        item mapping. In expansion the element still holds the API value, so
        references are matched by their API property name.
        """
        if self.expanding and self.schema.is_reference(node):
            return base(self.schema.reference(node).openapi.target_path)
        return map_name

    def _find_by_key(
        self,
        path: List[str],
        items: Iterable[Any],
        key: str,
    ) -> Optional[dict]:
        candidates = [
            item for item in items if isinstance(item, dict) and key in item
        ]
        if len(candidates) > 1 and self.strict_array_matching:
            raise AmbiguousMatchError(
                f"{len(candidates)} elements of {path} carry the key {key!r}"
            )
        return candidates[0] if candidates else None


## Shared Functions ############################################################


def expand(
    schema: MappingSchema,
    document: dict,
    repository: ObjectRepository,
    *field_paths: Sequence[str],
    **kwargs,
) -> List[ManagedObject]:
    """Expand the references of the document at each of the field paths and
    return the objects the caller must persist
    """
    mapper = Mapper(Direction.EXPAND, schema, repository, **kwargs)
    return mapper.run(document, *field_paths)


def collapse(
    schema: MappingSchema,
    document: dict,
    repository: ObjectRepository,
    *field_paths: Sequence[str],
    **kwargs,
):
    """Collapse the references of the document at each of the field paths"""
    mapper = Mapper(Direction.COLLAPSE, schema, repository, **kwargs)
    mapper.run(document, *field_paths)
