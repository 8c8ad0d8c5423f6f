"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from unittest import mock
import base64
import copy
import inspect
import os

# First Party
import alog

# Local
from kubemapper.config import library_config as config_detail_dict
from kubemapper.deploy_manager.dry_run_deploy_manager import DryRunDeployManager
from kubemapper.schema import MappingSchema

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_INSTANCE_NAME = "test-instance"
TEST_INSTANCE_UID = "12345678-1234-1234-1234-123456789012"
TEST_NAMESPACE = "test"
SOME_OTHER_NAMESPACE = "somewhere"

TEST_GROUP = "atlas.generated.mongodb.com"
TEST_API_VERSION = f"{TEST_GROUP}/v1"
TEST_KIND = "DatabaseUser"
TEST_MAJOR_VERSION = "v20250312"

# Mapping schema for a database user that points at its project (Group), keeps
# its password in a Secret and refers to custom roles by name
SAMPLE_MAPPINGS_YAML = f"""
properties:
  spec:
    properties:
      {TEST_MAJOR_VERSION}:
        properties:
          groupRef:
            x-kubernetes-mapping:
              nameSelector: .name
              properties:
                - $.status.{TEST_MAJOR_VERSION}.id
              type:
                kind: Group
                group: {TEST_GROUP}
                version: v1
                resource: groups
            x-openapi-mapping:
              property: .groupId
              type: string
          entry:
            properties:
              passwordSecretRef:
                x-kubernetes-mapping:
                  nameSelector: .name
                  propertySelectors:
                    - $.data.#
                  type:
                    kind: Secret
                    version: v1
                    resource: secrets
                x-openapi-mapping:
                  property: .password
                  type: string
              roles:
                items:
                  properties:
                    roleNameRef:
                      x-kubernetes-mapping:
                        nameSelector: .name
                        propertySelectors:
                          - $.spec.name
                        type:
                          kind: CustomRole
                          group: {TEST_GROUP}
                          version: v1
                          resource: customroles
                      x-openapi-mapping:
                        property: .roleName
                        type: string
"""

# The openAPIV3Schema of the sample CRD
SAMPLE_OPENAPI_SCHEMA = {
    "type": "object",
    "properties": {
        "apiVersion": {"type": "string"},
        "kind": {"type": "string"},
        "metadata": {"type": "object"},
        "spec": {
            "type": "object",
            "properties": {
                TEST_MAJOR_VERSION: {
                    "type": "object",
                    "properties": {
                        "groupId": {"type": "string"},
                        "groupRef": {
                            "type": "object",
                            "properties": {"name": {"type": "string"}},
                        },
                        "entry": {
                            "type": "object",
                            "properties": {
                                "username": {"type": "string"},
                                "password": {"type": "string"},
                                "passwordSecretRef": {
                                    "type": "object",
                                    "properties": {
                                        "name": {"type": "string"},
                                        "key": {"type": "string"},
                                    },
                                },
                                "roles": {
                                    "type": "array",
                                    "items": {"type": "object"},
                                },
                            },
                        },
                    },
                },
            },
        },
        "status": {"type": "object"},
    },
}


def sample_schema(mappings_yaml: str = SAMPLE_MAPPINGS_YAML) -> MappingSchema:
    return MappingSchema.from_yaml(mappings_yaml)


def make_crd(
    mappings_yaml: str = SAMPLE_MAPPINGS_YAML,
    openapi_schema: dict = None,
    kind: str = TEST_KIND,
    version: str = "v1",
) -> dict:
    """Build a CustomResourceDefinition carrying the given mapping annotation"""
    annotations = {}
    if mappings_yaml is not None:
        annotations["api-mappings"] = mappings_yaml
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {
            "name": f"{kind.lower()}s.{TEST_GROUP}",
            "annotations": annotations,
        },
        "spec": {
            "group": TEST_GROUP,
            "names": {"kind": kind, "plural": f"{kind.lower()}s"},
            "versions": [
                {
                    "name": version,
                    "served": True,
                    "storage": True,
                    "schema": {
                        "openAPIV3Schema": copy.deepcopy(
                            openapi_schema or SAMPLE_OPENAPI_SCHEMA
                        )
                    },
                }
            ],
        },
    }


def setup_cr(
    kind=TEST_KIND,
    api_version=TEST_API_VERSION,
    name=TEST_INSTANCE_NAME,
    namespace=TEST_NAMESPACE,
    spec=None,
    **kwargs,
):
    cr_dict = copy.deepcopy(kwargs)
    cr_dict.setdefault("kind", kind)
    cr_dict.setdefault("apiVersion", api_version)
    cr_dict.setdefault("metadata", {}).setdefault("name", name)
    cr_dict.setdefault("metadata", {}).setdefault("namespace", namespace)
    cr_dict.setdefault("metadata", {}).setdefault("uid", TEST_INSTANCE_UID)
    cr_dict.setdefault("spec", {}).update(copy.deepcopy(spec or {}))
    return cr_dict


def make_secret(name, data=None, namespace=TEST_NAMESPACE, encode=True):
    """Build a Secret, base64 encoding its data values unless told otherwise"""
    data = data or {}
    if encode:
        data = {
            key: base64.b64encode(val.encode("utf-8")).decode("ascii")
            for key, val in data.items()
        }
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": namespace},
        "data": data,
    }


def make_group(name, group_id=None, namespace=TEST_NAMESPACE):
    """Build a Group whose versioned status carries its remote id"""
    group = {
        "apiVersion": TEST_API_VERSION,
        "kind": "Group",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {TEST_MAJOR_VERSION: {"entry": {"name": name}}},
    }
    if group_id is not None:
        group["status"] = {TEST_MAJOR_VERSION: {"id": group_id}}
    return group


def make_custom_role(name, role_name, namespace=TEST_NAMESPACE):
    return {
        "apiVersion": TEST_API_VERSION,
        "kind": "CustomRole",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"name": role_name},
    }


@contextmanager
def library_config(**config_overrides):
    """This context manager sets library config values temporarily and reverts
    them on completion
    """
    # Override the configs and hang onto the old values
    old_vals = {}
    for key, val in config_overrides.items():
        if key in config_detail_dict:
            old_vals[key] = config_detail_dict[key]
        config_detail_dict[key] = val

    # Yield to the context
    try:
        yield
    finally:
        # Revert to the old values
        for key in config_overrides:
            if key in old_vals:
                config_detail_dict[key] = old_vals[key]
            else:
                del config_detail_dict[key]


def get_failable_method(fail_flag, method, failure_return=False):
    log.debug4(
        "Setting up failable mock of [%s] with fail flag: %s", str(method), fail_flag
    )

    def failable_method(*args, **kwargs):
        log.debug4(
            "Running failable mock of [%s] with fail flag: %s", str(method), fail_flag
        )
        if isinstance(fail_flag, Exception) or (
            inspect.isclass(fail_flag) and issubclass(fail_flag, Exception)
        ):
            log.debug4("Raising in failable mock")
            raise fail_flag
        if fail_flag == "assert":
            log.debug4("Asserting in failable mock")
            raise AssertionError(f"You told me to fail {method}!")
        if fail_flag:
            log.debug4("Returning %s", failure_return)
            return failure_return
        log.debug4("Passing through (%s, **%s)", args, kwargs)
        return method(*args, **kwargs)

    return failable_method


class MockDeployManager(DryRunDeployManager):
    """The MockDeployManager wraps a standard DryRunDeployManager and adds
    configuration options to simulate failures in each of its operations.
    """

    def __init__(
        self,
        deploy_fail=False,
        get_state_fail=False,
        filter_fail=False,
        set_status_fail=False,
        resources=None,
        **kwargs,
    ):
        """This DeployManager can be configured to have various failure cases
        and will mock the state of the cluster so that get_object_current_state
        will pull its information from the local dict.
        """
        super().__init__(resources, **kwargs)
        self.deploy = mock.Mock(
            side_effect=get_failable_method(deploy_fail, super().deploy, (False, False))
        )
        self.get_object_current_state = mock.Mock(
            side_effect=get_failable_method(
                get_state_fail, super().get_object_current_state, (False, None)
            )
        )
        self.filter_objects_current_state = mock.Mock(
            side_effect=get_failable_method(
                filter_fail, super().filter_objects_current_state, (False, [])
            )
        )
        self.set_status = mock.Mock(
            side_effect=get_failable_method(
                set_status_fail, super().set_status, (False, False)
            )
        )

    def get_obj(self, kind, name, namespace=TEST_NAMESPACE, api_version=None):
        return self.get_object_current_state(kind, name, namespace, api_version)[1]

    def has_obj(self, *args, **kwargs):
        return self.get_obj(*args, **kwargs) is not None
