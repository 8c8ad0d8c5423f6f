"""
Generic access to nested, dynamically typed documents

A document is the plain python form of a decoded json/yaml value: dicts are
objects, lists are arrays and anything else is a scalar. Documents are
addressed with field paths, which are sequences of field names. The special
segment ARRAY_ELEMENT means "descend into the elements of the enclosing array
and search each of them for the remainder of the path". There are no numeric
indices since array entries are correlated by identity, never by position.
"""

# Standard
from typing import Any, Iterable, List, Sequence, Tuple, Type, Union
import copy

# First Party
import alog

# Local
from .constants import ARRAY_ELEMENT, PATH_DELIM
from .exceptions import (
    FieldNotFoundError,
    InvalidPathError,
    NilObjectError,
    NotArrayError,
    NotObjectError,
    TypeMismatchError,
)

log = alog.use_channel("DOCMT")

# A field path is any sequence of field names and ARRAY_ELEMENT markers
FieldPath = Sequence[str]

# The expected type of an accessed value. The builtin object accepts anything.
ExpectedType = Union[Type, Tuple[Type, ...]]

## Path Helpers ################################################################


def as_path(locator: str) -> List[str]:
    """Split a dotted locator like ".data.apiKey" into a field path. Empty
    segments, such as the one created by a leading dot, are dropped.
    """
    return [part for part in locator.split(PATH_DELIM) if part]


def base(path: FieldPath) -> str:
    """The final segment of a path"""
    if not path:
        raise InvalidPathError("empty path has no base", path)
    return path[-1]


def parent(path: FieldPath) -> List[str]:
    """Everything but the final segment of a path"""
    return list(path[:-1])


## Accessors ###################################################################


def access_field(doc: Any, path: FieldPath, expected_type: ExpectedType = object):
    """Walk the given path through the document and return the value found at
    its end

    Args:
        doc:  Any
            The document to read from
        path:  FieldPath
            The path to walk. ARRAY_ELEMENT segments search every element of
            the array they apply to, depth first, returning the first one
            where the remainder of the path resolves.
        expected_type:  ExpectedType
            The type (or tuple of types) the value must have

    Returns:
        value:  Any
            The value at the end of the path

    Raises:
        FieldNotFoundError: A field along the path is absent
        NotObjectError: A field segment is applied to something that is not a
            dict
        NotArrayError: An ARRAY_ELEMENT segment is applied to something that
            is not a list
        NilObjectError: An intermediate value along the path is None
        TypeMismatchError: The value found is not an instance of expected_type
    """
    path = list(path)
    if not path:
        return _check_type(doc, expected_type, path)
    return _access(doc, path, 0, expected_type)


def access_field_object(doc: Any, path: FieldPath) -> dict:
    """Return the object that holds the final field of the path

    If the parent of the final field is an array, the first element holding a
    field with the final name is returned.

    Args:
        doc:  Any
            The document to read from
        path:  FieldPath
            Path to a field whose holder is wanted

    Returns:
        holder:  dict
            The dict that directly contains the field named by base(path)
    """
    path = list(path)
    field_name = base(path)
    holder = access_field(doc, parent(path))
    if isinstance(holder, list):
        for item in holder:
            if isinstance(item, dict) and field_name in item:
                return item
        raise FieldNotFoundError(path=path)
    if not isinstance(holder, dict):
        raise NotObjectError(f"holder of {path} is not an object", path)
    if field_name not in holder:
        raise FieldNotFoundError(path=path)
    return holder


## Mutators ####################################################################


def create_field(doc: dict, value: Any, path: FieldPath):
    """Set a value at the given path. Every intermediate object must already
    exist.

    If the segment before the final one is ARRAY_ELEMENT, or the final
    segment itself is, the value is appended to the array at the parent path.

    Args:
        doc:  dict
            The root object to modify
        value:  Any
            The value to place
        path:  FieldPath
            Where to place it
    """
    path = list(path)
    if not path:
        raise InvalidPathError("at least one path segment is required", path)
    if path[0] == ARRAY_ELEMENT:
        raise InvalidPathError("the root of a document must be an object", path)
    if not isinstance(doc, dict):
        raise NotObjectError("the root of a document must be an object", path)
    if len(path) == 1:
        doc[path[0]] = value
        return

    if path[-1] == ARRAY_ELEMENT:
        array_path = path[:-1]
    elif path[-2] == ARRAY_ELEMENT:
        array_path = path[:-2]
    else:
        array_path = None
    if array_path is not None:
        array = access_field(doc, array_path)
        if not isinstance(array, list):
            raise NotArrayError(f"expected an array at {array_path}", array_path)
        log.debug4("Appending to array at %s", array_path)
        array.append(value)
        return

    holder = access_field(doc, parent(path))
    if not isinstance(holder, dict):
        raise NotObjectError(f"expected an object at {parent(path)}", parent(path))
    holder[path[-1]] = value


def recursive_create_field(doc: dict, value: Any, path: FieldPath):
    """Set a value at the given path, creating every missing intermediate
    object first

    Missing prefixes are created as empty objects, or as empty arrays when the
    next segment is ARRAY_ELEMENT.
    """
    path = list(path)
    if not path:
        raise InvalidPathError("at least one path segment is required", path)
    for i in range(1, len(path)):
        prefix = path[:i]
        if prefix[-1] == ARRAY_ELEMENT:
            continue
        try:
            access_field(doc, prefix)
        except FieldNotFoundError:
            placeholder = [] if path[i] == ARRAY_ELEMENT else {}
            log.debug4("Creating missing intermediate %s", prefix)
            create_field(doc, placeholder, prefix)
    create_field(doc, value, path)


def get_or_create_field(doc: dict, default_value: Any, path: FieldPath) -> Any:
    """Return the value at the path, or place default_value there if absent
    and return it. Errors other than absence propagate.
    """
    try:
        return access_field(doc, path)
    except FieldNotFoundError:
        recursive_create_field(doc, default_value, path)
        return default_value


## Object Helpers ##############################################################


def copy_fields(dst: dict, src: dict) -> dict:
    """Deep copy every field of src onto dst, returning dst"""
    for key, value in src.items():
        dst[key] = copy.deepcopy(value)
    return dst


def skip_keys(obj: dict, *keys: str) -> dict:
    """Shallow copy of the object without the given keys"""
    return {key: value for key, value in obj.items() if key not in keys}


def fields_of(obj: dict) -> List[str]:
    """Sorted field names of an object"""
    return sorted(obj.keys())


def type_name(value: Any) -> str:
    """Document oriented name of the type of a value"""
    if value is None:
        return "null"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


## Implementation Details ######################################################


def _access(
    node: Any,
    path: List[str],
    index: int,
    expected_type: ExpectedType,
):
    """Recursive step of access_field handling path[index]"""
    segment = path[index]
    walked = path[: index + 1]
    is_last = index == len(path) - 1

    if segment == ARRAY_ELEMENT:
        if not isinstance(node, list):
            raise NotArrayError(f"expected an array at {walked}", walked)
        if is_last:
            return _check_type(node, expected_type, walked)
        for item in node:
            try:
                return _access(item, path, index + 1, expected_type)
            except FieldNotFoundError:
                continue
        raise FieldNotFoundError(path=path)

    if not isinstance(node, dict):
        raise NotObjectError(
            f"expected an object before {walked} but got {type_name(node)}", walked
        )
    if segment not in node:
        raise FieldNotFoundError(path=walked)
    value = node[segment]
    if is_last:
        return _check_type(value, expected_type, walked)
    if value is None:
        raise NilObjectError(f"found null at {walked}", walked)
    return _access(value, path, index + 1, expected_type)


def _check_type(value: Any, expected_type: ExpectedType, path: Iterable[str]):
    """Make sure the value is an instance of the expected type"""
    expected = expected_type if isinstance(expected_type, tuple) else (expected_type,)
    if object in expected:
        return value
    # Booleans are ints in python but never numbers in a document
    if isinstance(value, bool) and bool not in expected:
        matches = False
    else:
        matches = isinstance(value, expected)
    if not matches:
        raise TypeMismatchError(
            expected=" or ".join(_expected_name(typ) for typ in expected),
            actual=type_name(value),
            path=list(path),
        )
    return value


def _expected_name(typ: type) -> str:
    if typ is dict:
        return "object"
    if typ is list:
        return "array"
    if typ is type(None):
        return "null"
    return typ.__name__
