"""
This module holds the state for mapping the references of a single custom
resource during one reconciliation
"""

# Standard
from typing import List, Optional
import copy

# First Party
import alog

# Local
from .deploy_manager import DeployManagerBase
from .exceptions import MapperError, assert_cluster
from .status import ReadyReason, reason_for_error, update_resource_status
from .translate import Translator

log = alog.use_channel("SESSN")


class MappingSession:
    """A MappingSession ties a custom resource to its translator and to the
    cluster. It fetches the objects references may point at, translates the
    resource to and from the API, persists the related objects and records the
    outcome in the Ready condition.
    """

    # We strictly define the set of attributes that a session can have to
    # disallow arbitrary assignment
    __slots__ = [
        "__cr_manifest",
        "__translator",
        "__deploy_manager",
        "__dependencies",
    ]

    def __init__(
        self,
        cr_manifest: dict,
        translator: Translator,
        deploy_manager: DeployManagerBase,
    ):
        """Construct a session for one custom resource

        Args:
            cr_manifest:  dict
                The full value of the CR manifest being reconciled
            translator:  Translator
                The translator for the CR's kind, version and API major version
            deploy_manager:  DeployManagerBase
                The DeployManager in charge of all interactions with the cluster
        """
        self._validate_cr(cr_manifest)
        self.__cr_manifest = copy.deepcopy(cr_manifest)
        self.__translator = translator
        self.__deploy_manager = deploy_manager
        self.__dependencies: Optional[List[dict]] = None

    ## Properties ##############################################################

    @property
    def cr_manifest(self) -> dict:
        """The CR manifest as last translated"""
        return self.__cr_manifest

    @property
    def translator(self) -> Translator:
        return self.__translator

    @property
    def deploy_manager(self) -> DeployManagerBase:
        return self.__deploy_manager

    @property
    def kind(self) -> str:
        return self.cr_manifest["kind"]

    @property
    def api_version(self) -> str:
        return self.cr_manifest["apiVersion"]

    @property
    def name(self) -> str:
        return self.cr_manifest["metadata"]["name"]

    @property
    def namespace(self) -> str:
        return self.cr_manifest["metadata"]["namespace"]

    @property
    def dependencies(self) -> List[dict]:
        """The objects references may point at, fetched on first use"""
        if self.__dependencies is None:
            self.__dependencies = self.load_dependencies()
        return self.__dependencies

    ## Public ##################################################################

    def load_dependencies(self) -> List[dict]:
        """Fetch every object in the CR's namespace whose type is the target
        of a reference in the mapping schema

        Returns:
            dependencies:  List[dict]
                The fetched objects
        """
        schema = self.translator.schema
        if schema is None:
            return []
        dependencies = []
        for kube_type in sorted(schema.reference_types(), key=lambda t: t.gvk):
            success, objs = self.deploy_manager.filter_objects_current_state(
                kind=kube_type.kind,
                namespace=self.namespace,
                api_version=kube_type.api_version,
            )
            assert_cluster(
                success,
                f"Failed to list {kube_type.gvk} in namespace {self.namespace}",
            )
            log.debug2("Found %d %s dependencies", len(objs), kube_type.kind)
            dependencies.extend(objs)
        self.__dependencies = dependencies
        return dependencies

    def build_request(self) -> dict:
        """Translate the CR into the API request document

        A failure is recorded in the Ready condition and re-raised.
        """
        try:
            return self.translator.to_api(self.cr_manifest, self.dependencies)
        except MapperError as err:
            self._report_error(err)
            raise

    def apply_response(self, api_document: dict) -> dict:
        """Translate an API response back into the CR, persist the CR and the
        objects holding its referenced values, and mark the CR Ready

        A failure is recorded in the Ready condition and re-raised. Nothing is
        written to the cluster for a failed translation.

        Args:
            api_document:  dict
                The API response

        Returns:
            cr_manifest:  dict
                The updated CR manifest
        """
        try:
            target, *related = self.translator.from_api(
                self.cr_manifest, api_document, self.dependencies
            )
            log.debug("Persisting %s with %d related objects", self.name, len(related))
            success, changed = self.deploy_manager.deploy(related + [target])
            assert_cluster(
                success, f"Failed to deploy objects for {self.kind}/{self.name}"
            )
        except MapperError as err:
            self._report_error(err)
            raise
        log.debug2("Deploy changed cluster state: %s", changed)

        self.__cr_manifest = target
        self.__dependencies = None
        update_resource_status(
            self.deploy_manager,
            kind=self.kind,
            api_version=self.api_version,
            name=self.name,
            namespace=self.namespace,
            ready_reason=ReadyReason.STABLE,
            ready_message="",
            external_status=copy.deepcopy(target.get("status", {})),
        )
        return target

    ## Implementation Details ##################################################

    def _report_error(self, err: MapperError):
        reason = reason_for_error(err)
        log.warning("Mapping %s/%s failed (%s): %s", self.kind, self.name, reason, err)
        update_resource_status(
            self.deploy_manager,
            kind=self.kind,
            api_version=self.api_version,
            name=self.name,
            namespace=self.namespace,
            ready_reason=reason,
            ready_message=str(err),
        )

    @staticmethod
    def _validate_cr(cr_manifest: dict):
        """Ensure that all expected elements of the CR are present. Expected
        elements are those that are guaranteed to be present by the kube API.
        """
        assert "kind" in cr_manifest, "CR missing required section ['kind']"
        assert "apiVersion" in cr_manifest, "CR missing required section ['apiVersion']"
        assert "metadata" in cr_manifest, "CR missing required section ['metadata']"
        assert (
            "name" in cr_manifest["metadata"]
        ), "CR missing required section ['metadata.name']"
        assert (
            "namespace" in cr_manifest["metadata"]
        ), "CR missing required section ['metadata.namespace']"
