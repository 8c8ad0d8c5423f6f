"""
This module holds the common functionality used to represent the status of
resources whose references are mapped by kubemapper

Kubemapper maintains a single status condition:

* Ready: True if the resource was translated and its references resolved

When a mapping fails, the Ready condition is set to False and its reason is
derived from the error: unrecoverable errors report Errored (or ConfigError
for a broken CRD or mapping schema), while errors that a later reconciliation
may resolve, such as a referenced object that does not exist yet, report
InProgress.
"""

# Standard
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union
import copy

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from .exceptions import ConfigError, MapperError, UnsupportedSchemaShapeError

log = alog.use_channel("STTUS")

## Public ######################################################################

# The "type" value in the condition
READY_CONDITION = "Ready"

# The key in the condition used for the timestamp
TIMESTAMP_KEY = "lastTransactionTime"


class ReadyReason(Enum):
    """Nested class to hold reason constants for the Ready condition"""

    # The resource is translated and all references are resolved
    STABLE = "Stable"

    # The mapping hit an error that a later reconcile may resolve
    IN_PROGRESS = "InProgress"

    # The CRD or its mapping schema can not be used
    CONFIG_ERROR = "ConfigError"

    # The mapping hit an unrecoverable error
    ERRORED = "Errored"


_READY_REASON_VALUES = {reason.value for reason in ReadyReason}


def reason_for_error(err: Exception) -> ReadyReason:
    """Pick the Ready reason that describes a mapping error"""
    if isinstance(err, (ConfigError, UnsupportedSchemaShapeError)):
        return ReadyReason.CONFIG_ERROR
    if isinstance(err, MapperError) and not err.is_fatal_error:
        return ReadyReason.IN_PROGRESS
    return ReadyReason.ERRORED


def make_mapping_status(
    ready_reason: Optional[Union[ReadyReason, str]] = None,
    ready_message: str = "",
    external_conditions: Optional[List[dict]] = None,
    external_status: Optional[dict] = None,
) -> dict:
    """Create a full status object for a mapped resource

    Args:
        ready_reason:  Optional[ReadyReason or str]
            The reason enum for the Ready condition
        ready_message:  str
            Plain-text message explaining the Ready condition value
        external_conditions:  Optional[List[dict]]
            Additional conditions to include in the update
        external_status:  Optional[dict]
            Additional key/value status elements besides "conditions" that
            should be preserved through the update (e.g. the versioned status
            written from the API response)

    Returns:
        current_status:  dict
            Dict representation of the status for the resource
    """
    now = datetime.now()
    conditions = []
    if ready_reason is not None:
        conditions.append(_make_ready_condition(ready_reason, ready_message, now))
    conditions.extend(external_conditions or [])
    status = dict(external_status or {})
    status["conditions"] = conditions
    return status


def update_mapping_status(current_status: dict, **kwargs) -> dict:
    """Create an updated status based on the values in the current status

    Args:
        current_status:  dict
            The dict representation of the status for a given resource
        **kwargs:
            Additional keyword args to pass to make_mapping_status

    Returns:
        updated_status:  dict
            Updated dict representation of the status for the resource
    """
    # Work on a copy so that status changes are still detected by comparing
    # against the current status
    current_status = copy.deepcopy(current_status)

    current_conditions = current_status.get("conditions", [])
    ready_cond = get_condition(READY_CONDITION, current_status)
    ready_reason = ready_cond.get("reason")
    if ready_reason in _READY_REASON_VALUES:
        kwargs.setdefault("ready_reason", ReadyReason(ready_reason))
    elif ready_reason:
        log.debug2("Ignoring unknown Ready reason %s", ready_reason)
    kwargs.setdefault("ready_message", ready_cond.get("message", ""))

    # Conditions and status elements owned by other parts of the operator are
    # carried through untouched
    kwargs["external_conditions"] = [
        cond for cond in current_conditions if cond.get("type") != READY_CONDITION
    ]
    external_status = {
        key: val for key, val in current_status.items() if key != "conditions"
    }
    external_status.update(kwargs.get("external_status") or {})
    kwargs["external_status"] = external_status
    log.debug3("Merged status kwargs: %s", kwargs)

    return make_mapping_status(**kwargs)


def update_resource_status(
    deploy_manager: "DeployManagerBase",  # noqa: F821
    kind: str,
    api_version: str,
    name: str,
    namespace: str,
    **kwargs: dict,
) -> dict:
    """Create an updated status based on the values in the current status and
    apply it to the resource when it changed

    Args:
        deploy_manager: DeployManagerBase
            The deploymanager used to get and set status
        kind: str
            The kind of the resource
        api_version: str
            The api_version of the resource
        name: str
            The name of the resource
        namespace: str
            The namespace the resource is located in
        **kwargs: Dict
            Any additional keyword arguments to be passed to
            update_mapping_status

    Returns:
        status_object: Dict
            The applied status if successful
    """
    log.debug3(
        "Updating status for %s/%s.%s/%s",
        namespace,
        api_version,
        kind,
        name,
    )

    # Fetch the current status from the cluster
    success, current_state = deploy_manager.get_object_current_state(
        api_version=api_version,
        kind=kind,
        name=name,
        namespace=namespace,
    )
    if not success:
        log.warning("Failed to fetch current state for %s/%s/%s", namespace, kind, name)
        return {}
    current_status = (current_state or {}).get("status", {})
    log.debug3("Pre-update status: %s", current_status)

    status_object = update_mapping_status(current_status, **kwargs)
    log.debug3("Updated status: %s", status_object)

    # Only update the status if something besides a timestamp changed
    if status_changed(current_status, status_object):
        log.debug("Found meaningful change. Updating status")
        log.debug2("(current) %s != (updated) %s", current_status, status_object)

        success, _ = deploy_manager.set_status(
            kind=kind,
            name=name,
            namespace=namespace,
            api_version=api_version,
            status=status_object,
        )

        # A failed status update is not a mapping failure
        if not success:
            log.warning("Failed to update status for [%s/%s/%s]", namespace, kind, name)
            return {}

    return status_object


def status_changed(current_status: dict, new_status: dict) -> bool:
    """Compare two status objects to determine if there is a meaningful change
    between the current status and the proposed new status. A meaningful change
    is defined as any change besides a timestamp.

    Args:
        current_status:  dict
            The raw status dict from the current CR
        new_status:  dict
            The proposed new status

    Returns:
        status_changed:  bool
            True if there is a meaningful change between the current status and
            the new status
    """
    # Status objects must be dicts
    if not isinstance(current_status, dict) or not isinstance(new_status, dict):
        return True

    # Perform a deep diff, excluding timestamps
    return bool(
        DeepDiff(
            current_status,
            new_status,
            exclude_obj_callback=lambda _, path: path.endswith(f"{TIMESTAMP_KEY}']"),
        )
    )


def get_condition(type_name: str, current_status: dict) -> dict:
    """Extract the given condition type from a status object

    Args:
        type_name:  str
            The condition type to fetch
        current_status:  dict
            The dict representation of the status for a given resource

    Returns:
        condition:  dict
            The condition object if found, empty dict otherwise
    """
    cond = [
        cond
        for cond in current_status.get("conditions", [])
        if cond.get("type") == type_name
    ]
    if cond:
        assert len(cond) == 1, f"Found multiple condition entries for {type_name}"
        return cond[0]
    return {}


## Implementation Details ######################################################


def _make_ready_condition(
    reason: Union[ReadyReason, str],
    message: str,
    last_transaction_time: datetime,
):
    """Construct a ready condition with a reason and determine the status based
    on the reason
    """
    if isinstance(reason, str):
        reason = ReadyReason(reason)
    ready_status = reason == ReadyReason.STABLE
    log.debug2("%s status %s: %s", READY_CONDITION, ready_status, reason)
    return {
        "type": READY_CONDITION,
        "status": str(ready_status),
        "reason": reason.value,
        "message": message,
        TIMESTAMP_KEY: last_transaction_time.isoformat(),
    }
