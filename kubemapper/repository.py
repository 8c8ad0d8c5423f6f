"""
The in-memory working set of kubernetes objects for a single mapping call

The repository holds the main object (the one being reconciled) and every
related object the caller already knows about. References are resolved
against it and any object created or updated while expanding references is
recorded so that the caller can persist it afterwards.
"""

# Standard
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Union

# First Party
import alog

# Local
from .constants import MAIN_NAMESPACE
from .managed_object import ManagedObject, ObjectKey

log = alog.use_channel("REPO")

# Anything the repository accepts as an object
OBJECT_TYPE = Union[ManagedObject, dict]


class ObjectRepository:
    """Per-reconciliation snapshot of the main object and its dependencies.
    Instances are not shared between reconciliations and need no locking.
    """

    def __init__(
        self,
        main: OBJECT_TYPE,
        dependencies: Optional[Iterable[OBJECT_TYPE]] = None,
    ):
        """Construct with the main object and the known dependencies

        Args:
            main:  Union[ManagedObject, dict]
                The object under reconciliation. Its namespace is the default
                for every lookup and insertion.
            dependencies:  Optional[Iterable[Union[ManagedObject, dict]]]
                Related objects already fetched by the caller
        """
        self._main = _as_managed_object(main)
        self._objects: Dict[ObjectKey, ManagedObject] = {}
        self._added: List[ManagedObject] = []
        for dependency in dependencies or []:
            obj = self._normalize(_as_managed_object(dependency))
            self._objects[obj.key] = obj
        log.debug2(
            "Built repository for %s with %d dependencies",
            self._main,
            len(self._objects),
        )

    ## Properties ##############################################################

    @property
    def main(self) -> ManagedObject:
        """The object under reconciliation"""
        return self._main

    @property
    def namespace(self) -> Optional[str]:
        """The namespace of the main object"""
        return self._main.namespace

    @property
    def added(self) -> List[ManagedObject]:
        """Objects created or replaced during the mapping, in insertion order"""
        return list(self._added)

    ## Public ##################################################################

    def objects(self) -> Iterator[ManagedObject]:
        """Iterate over all tracked dependencies (the main object excluded)"""
        return iter(list(self._objects.values()))

    def find(
        self,
        name: str,
        namespace: Optional[str] = MAIN_NAMESPACE,
        kind: Optional[str] = None,
    ) -> Optional[ManagedObject]:
        """Look up a tracked object by name

        Args:
            name:  str
                The name of the object
            namespace:  Optional[str]
                The namespace to look in. None or MAIN_NAMESPACE mean the
                namespace of the main object.
            kind:  Optional[str]
                If given, only objects of this kind match

        Returns:
            obj:  Optional[ManagedObject]
                The matching object or None
        """
        namespace = self._resolve_namespace(namespace)
        if kind is not None:
            return self._objects.get(ObjectKey(kind, namespace, name))
        for key, obj in self._objects.items():
            if key.name == name and key.namespace == namespace:
                return obj
        return None

    def has(self, name: str, namespace: Optional[str] = MAIN_NAMESPACE) -> bool:
        """Whether an object with this name is tracked"""
        return self.find(name, namespace) is not None

    def add(self, obj: OBJECT_TYPE) -> ManagedObject:
        """Insert or replace an object and record it as added

        An object with the same kind, namespace and name replaces the tracked
        one, both in the index and in the added list. The main object itself
        is never recorded as added.

        Args:
            obj:  Union[ManagedObject, dict]
                The object to track

        Returns:
            obj:  ManagedObject
                The tracked handle with its namespace normalized
        """
        obj = self._normalize(_as_managed_object(obj))
        if obj.key == self._main.key:
            log.debug("Not tracking main object %s as added", obj)
            return obj
        self._objects[obj.key] = obj
        for i, existing in enumerate(self._added):
            if existing.key == obj.key:
                log.debug2("Replacing added object %s", obj)
                self._added[i] = obj
                return obj
        log.debug2("Adding object %s", obj)
        self._added.append(obj)
        return obj

    @contextmanager
    def transaction(self):
        """Context that restores the tracked and added objects if the body
        raises. Tracked objects must be replaced through add() rather than
        mutated in place for the rollback to be complete.
        """
        objects = dict(self._objects)
        added = list(self._added)
        try:
            yield self
        except Exception:
            log.debug("Rolling back repository changes")
            self._objects = objects
            self._added = added
            raise

    ## Implementation Details ##################################################

    def _resolve_namespace(self, namespace: Optional[str]) -> Optional[str]:
        if namespace is None or namespace == MAIN_NAMESPACE:
            return self.namespace
        return namespace

    def _normalize(self, obj: ManagedObject) -> ManagedObject:
        """Replace a missing or sentinel namespace with the main object's"""
        resolved = self._resolve_namespace(obj.namespace)
        if resolved != obj.namespace:
            obj.namespace = resolved
        return obj


def _as_managed_object(obj: OBJECT_TYPE) -> ManagedObject:
    if isinstance(obj, ManagedObject):
        return obj
    return ManagedObject(obj)
