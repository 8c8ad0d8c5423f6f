"""
The DryRunDeployManager implements the DeployManager interface but does not
actually interact with the cluster and instead holds the state of the cluster in
a local map.
"""

# Standard
from datetime import datetime
from threading import RLock
from typing import List, Tuple
import copy
import operator
import random
import uuid

# First Party
import alog

# Local
from .base import DeployManagerBase

log = alog.use_channel("DRY-RUN")

# Lock to ensure deploys are thread safe
DRY_RUN_CLUSTER_LOCK = RLock()


class DryRunDeployManager(DeployManagerBase):
    """
    Deploy manager which doesn't actually deploy!
    """

    def __init__(self, resources=None, generate_resource_version=True):
        """Construct with the resources that the simulated cluster starts with"""
        self._cluster_content = {}
        self.generate_resource_version = generate_resource_version

        # Deploy provided resources
        self.deploy(resources or [])

    ## Interface ###############################################################

    def deploy(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        log.info("DRY RUN deploy")
        changes = False
        for resource in resource_definitions:
            resource = copy.deepcopy(resource)
            api_version = resource.get("apiVersion")
            kind = resource.get("kind")
            name = resource.get("metadata", {}).get("name")
            namespace = resource.get("metadata", {}).get("namespace")
            log.debug(
                "DRY RUN deploy [%s/%s/%s/%s]", namespace, kind, api_version, name
            )
            log.debug4(resource)

            with DRY_RUN_CLUSTER_LOCK:
                entries = (
                    self._cluster_content.setdefault(namespace, {})
                    .setdefault(kind, {})
                    .setdefault(api_version, {})
                )
                changes = changes or (
                    _without_server_fields(entries.get(name, {}))
                    != _without_server_fields(resource)
                )

                metadata = resource.setdefault("metadata", {})
                existing_metadata = entries.get(name, {}).get("metadata", {})
                metadata["creationTimestamp"] = existing_metadata.get(
                    "creationTimestamp", datetime.now().isoformat()
                )
                metadata["uid"] = existing_metadata.get("uid", str(uuid.uuid4()))
                if self.generate_resource_version:
                    metadata["resourceVersion"] = str(random.randint(1, 1000)).zfill(
                        5
                    )
                entries[name] = resource

        return True, changes

    def get_object_current_state(self, kind, name, namespace=None, api_version=None):
        log.info(
            "DRY RUN get_object_current_state of [%s/%s] in [%s]", kind, name, namespace
        )

        # Look in the cluster state
        matches = []
        kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
        log.debug3("Kind entries: %s", kind_entries)
        for api_ver, entries in kind_entries.items():
            log.debug3("Checking api_version [%s // %s]", api_ver, api_version)
            if name in entries and (api_ver == api_version or api_version is None):
                matches.append(entries[name])
        log.debug(
            "Found %d matches for [%s/%s] in %s", len(matches), kind, name, namespace
        )
        if len(matches) == 1:
            return True, copy.deepcopy(matches[0])
        return True, None

    def filter_objects_current_state(
        self,
        kind,
        namespace=None,
        api_version=None,
        label_selector=None,
    ):
        log.info(
            "DRY RUN filter_objects_current_state of [%s] in [%s]", kind, namespace
        )

        # Look in the cluster state
        matches = []
        kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
        for api_ver, entries in kind_entries.items():
            # Make sure api version matches
            log.debug3("Checking api_version [%s // %s]", api_ver, api_version)
            if api_ver != api_version and api_version is not None:
                continue

            for resource in entries.values():
                labels = resource.get("metadata", {}).get("labels", {})
                log.debug3("Checking label_selector [%s // %s]", labels, label_selector)
                if label_selector is not None and not _match_selector(
                    labels, label_selector
                ):
                    continue

                # Add deep copy of entry to matches list
                matches.append(copy.deepcopy(resource))

        return True, matches

    def set_status(
        self,
        kind,
        name,
        namespace,
        status,
        api_version=None,
    ):  # pylint: disable=too-many-arguments
        log.info(
            "DRY RUN set_status of [%s.%s/%s] in %s: %s",
            api_version,
            kind,
            name,
            namespace,
            status,
        )
        object_content = self.get_object_current_state(
            kind, name, namespace, api_version
        )[1]
        if object_content is None:
            log.debug("Did not find [%s/%s] in %s", kind, name, namespace)
            return False, False
        prev_status = object_content.get("status")
        object_content["status"] = status
        self.deploy([object_content])
        return True, prev_status != status


## Implementation Details ######################################################

# Ordered so that "!=" and "==" are tried before "="
_EQUALITY_OPS = {"!=": operator.ne, "==": operator.eq, "=": operator.eq}


# Metadata fields owned by the cluster rather than the client
_SERVER_FIELDS = ["resourceVersion", "creationTimestamp", "uid"]


def _without_server_fields(resource: dict) -> dict:
    resource = copy.deepcopy(resource)
    for key in _SERVER_FIELDS:
        resource.get("metadata", {}).pop(key, None)
    return resource


def _match_selector(values: dict, value_selector: str) -> bool:
    """Check a set of labels against an equality based selector such as
    "app=web,tier!=db,managed". Set based selectors are not supported.
    """
    for selector in value_selector.split(","):
        selector = selector.strip()
        if not selector:
            continue
        op_str = next((op for op in _EQUALITY_OPS if op in selector), None)
        if op_str is not None:
            key, expected = selector.split(op_str, 1)
            action = _EQUALITY_OPS[op_str]
        elif selector.startswith("!"):
            if selector[1:].strip() in values:
                return False
            continue
        else:
            if selector not in values:
                return False
            continue

        value = values.get(key.strip())
        value = str(value).strip() if value is not None else value
        if not action(value, expected.strip()):
            log.debug3(
                "Label with key: %s and value: %s does not match selector %s",
                key,
                value,
                selector,
            )
            return False

    # If all selectors matched then return True
    return True
