"""
The Translator moves values between a versioned custom resource and the API
document of the external service it stands for.

A custom resource pins the API major version it speaks under its spec:

    apiVersion: atlas.generated.mongodb.com/v1
    kind: Group
    metadata:
      name: my-group
    spec:
      v20250312:
        groupRef: {name: my-group-6f3c...}
        entry:
          name: my-project
          orgId: 32b6e34b3d91647abb20e7b8

Going to the API, the references of spec.<major> are collapsed into API values
and spec.<major>.entry is flattened into the request. Coming from the API, the
response is copied into spec.<major>, spec.<major>.entry and status.<major>
and the API values there are expanded back into references.
"""

# Standard
from typing import Iterable, List, Optional
import copy

# Third Party
import jsonschema

# First Party
import alog

# Local
from .constants import ENTRY_FIELD, PROPERTIES
from .document import (
    access_field,
    copy_fields,
    get_or_create_field,
    recursive_create_field,
    skip_keys,
)
from .exceptions import (
    ConfigError,
    FieldNotFoundError,
    SchemaValidationError,
    assert_config,
)
from .managed_object import ManagedObject
from .mapper import Direction, Mapper
from .repository import ObjectRepository
from .schema import MappingSchema

log = alog.use_channel("XLATE")


class Translator:
    """A Translator is bound to one CRD, one of its versions and one API major
    version. It holds no per-call state and may be shared.
    """

    def __init__(self, crd: dict, crd_version: str, major_version: str):
        """Construct from the CRD definition

        Args:
            crd:  dict
                The CustomResourceDefinition, including its annotations
            crd_version:  str
                The CRD version to translate (e.g. "v1")
            major_version:  str
                The pinned API major version (e.g. "v20250312")
        """
        self.major_version = major_version
        self.kind = (crd.get("spec", {}).get("names") or {}).get("kind")
        self._annotations = dict(crd.get("metadata", {}).get("annotations") or {})

        openapi_schema = self._select_schema(crd, crd_version)
        self._assert_major_version(openapi_schema)
        try:
            jsonschema.Draft7Validator.check_schema(openapi_schema)
        except jsonschema.exceptions.SchemaError as err:
            raise ConfigError(
                f"failed to compile schema of {self.kind} {crd_version}: {err.message}"
            ) from err
        self._validator = jsonschema.Draft7Validator(openapi_schema)
        self.schema = MappingSchema.from_annotations(self._annotations)
        log.debug(
            "Built translator for %s %s at %s (mappings: %s)",
            self.kind,
            crd_version,
            major_version,
            self.schema is not None,
        )

    ## Public ##################################################################

    def annotation(self, key: str) -> Optional[str]:
        """The value of an annotation on the translated CRD"""
        return self._annotations.get(key)

    def validate(self, obj: dict):
        """Check that an object conforms to the CRD schema

        Raises:
            SchemaValidationError if it does not
        """
        error = jsonschema.exceptions.best_match(self._validator.iter_errors(obj))
        if error is not None:
            location = ".".join(str(part) for part in error.absolute_path)
            raise SchemaValidationError(
                f"object validation failed against CRD schema at [{location}]: "
                f"{error.message}"
            )

    def to_api(self, source_cr: dict, dependencies: Iterable[dict] = ()) -> dict:
        """Translate a custom resource into the API request document

        Only the spec is used to populate the request, nothing from the status.

        Args:
            source_cr:  dict
                The custom resource. It is not modified.
            dependencies:  Iterable[dict]
                The objects references in the spec may point at

        Returns:
            request:  dict
                The API document
        """
        self.validate(source_cr)
        cr_copy = copy.deepcopy(source_cr)
        if self.schema is not None:
            repository = ObjectRepository(cr_copy, copy.deepcopy(list(dependencies)))
            Mapper(Direction.COLLAPSE, self.schema, repository).run(
                cr_copy, self._spec_fields
            )

        try:
            value = access_field(cr_copy, self._spec_fields, dict)
        except FieldNotFoundError as err:
            raise SchemaValidationError(
                f"{ManagedObject(source_cr)} has no spec.{self.major_version}"
            ) from err
        if self.schema is not None:
            self.schema.strip_references(value, *self._spec_fields)

        request = {}
        entry = value.get(ENTRY_FIELD)
        if isinstance(entry, dict):
            copy_fields(request, skip_keys(value, ENTRY_FIELD))
            copy_fields(request, entry)
        else:
            copy_fields(request, value)
        log.debug2("Translated %s to API request", ManagedObject(source_cr))
        return request

    def from_api(
        self,
        target_cr: dict,
        api_document: dict,
        dependencies: Iterable[dict] = (),
    ) -> List[dict]:
        """Translate an API document into the custom resource and the related
        objects holding its referenced values

        Args:
            target_cr:  dict
                The custom resource to populate. It is not modified.
            api_document:  dict
                The API response
            dependencies:  Iterable[dict]
                The related objects already known

        Returns:
            objects:  List[dict]
                The populated custom resource followed by every related
                object created or updated while expanding references
        """
        target = copy.deepcopy(target_cr)
        versioned_spec = get_or_create_field(target, {}, self._spec_fields)
        copy_fields(versioned_spec, api_document)
        versioned_spec[ENTRY_FIELD] = copy_fields({}, api_document)
        recursive_create_field(
            target, copy_fields({}, api_document), self._status_fields
        )

        added = []
        if self.schema is not None:
            repository = ObjectRepository(target, copy.deepcopy(list(dependencies)))
            added = Mapper(Direction.EXPAND, self.schema, repository).run(
                target,
                self._spec_fields,
                self._spec_fields + (ENTRY_FIELD,),
                self._status_fields,
            )
        self.validate(target)
        log.debug2(
            "Translated API document into %s with %d related objects",
            ManagedObject(target),
            len(added),
        )
        return [target] + [obj.definition for obj in added]

    ## Implementation Details ##################################################

    @property
    def _spec_fields(self):
        return ("spec", self.major_version)

    @property
    def _status_fields(self):
        return ("status", self.major_version)

    def _select_schema(self, crd: dict, crd_version: str) -> dict:
        versions = crd.get("spec", {}).get("versions") or []
        for version in versions:
            if version.get("name") == crd_version:
                openapi_schema = (version.get("schema") or {}).get("openAPIV3Schema")
                assert_config(
                    isinstance(openapi_schema, dict),
                    f"CRD {self.kind} {crd_version} has no openAPIV3Schema",
                )
                return openapi_schema
        raise ConfigError(f"CRD {self.kind} has no version {crd_version}")

    def _assert_major_version(self, openapi_schema: dict):
        spec_props = (
            (openapi_schema.get(PROPERTIES) or {}).get("spec", {}).get(PROPERTIES)
        ) or {}
        assert_config(
            self.major_version in spec_props,
            f"failed to match the CRD spec version {self.major_version!r} "
            f"in {self.kind} schema",
        )

