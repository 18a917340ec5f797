"""
# Request models for the GKE Multi-Cloud API.

Cluster and node pool requests are assembled from the configuration and the
derived identifiers as dataclasses, rendered to a JSON body with
`to_payload()`, and validated against the JSON schemas shipped in the
`schemas/` directory before they are sent.

The API is pre-GA, so the schemas only pin the fields this tool sets and
allow anything else.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict, Optional
from jsonschema import validate, ValidationError
from .errors import PayloadError

_SCHEMA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)),
                           "schemas")
_SCHEMA_CACHE = {}


def load_schema(name):
    """Loads (once) a JSON schema from the package schema directory."""
    if name not in _SCHEMA_CACHE:
        with open(os.path.join(_SCHEMA_DIR, f"{name}.json")) as f:
            _SCHEMA_CACHE[name] = json.load(f)
    return _SCHEMA_CACHE[name]


def validate_payload(name, payload):
    """
    Validates a request body against the named schema.

    Raises:
        PayloadError: If the body does not match the schema.
    """
    try:
        validate(instance=payload, schema=load_schema(name))
    except ValidationError as e:
        err_msg = str(e).split('\n')[0]
        raise PayloadError(f"Invalid {name} request: {err_msg}") from e
    return payload


@dataclass(frozen=True)
class DerivedIdentifiers:
    """Identifiers fetched from az and gcloud for one invocation."""
    project_id: str
    project_number: str
    subscription_id: str
    tenant_id: str
    application_id: str
    resource_group_id: str
    vnet_id: str
    subnet_id: str
    admin_user: str


@dataclass
class AzureClusterSpec:
    name: str
    azure_region: str
    resource_group_id: str
    vnet_id: str
    subnet_id: str
    pod_cidr: str
    service_cidr: str
    version: str
    vm_size: str
    ssh_public_key: str
    admin_user: str
    project_number: str
    tenant_id: str
    application_id: str
    description: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, cfg, name, ids, ssh_public_key):
        return cls(
            name=name,
            azure_region=cfg.AZURE_REGION,
            resource_group_id=ids.resource_group_id,
            vnet_id=ids.vnet_id,
            subnet_id=ids.subnet_id,
            pod_cidr=cfg.POD_ADDRESS_CIDR,
            service_cidr=cfg.SERVICE_ADDRESS_CIDR,
            version=cfg.CLUSTER_VERSION,
            vm_size=cfg.CONTROL_PLANE_VM_SIZE,
            ssh_public_key=ssh_public_key,
            admin_user=ids.admin_user,
            project_number=ids.project_number,
            tenant_id=ids.tenant_id,
            application_id=ids.application_id,
            description=f"Anthos cluster {name} on Azure",
            tags={"cluster": name}
        )

    def to_payload(self):
        payload = {
            "name": self.name,
            "azureRegion": self.azure_region,
            "resourceGroupId": self.resource_group_id,
            "networking": {
                "virtualNetworkId": self.vnet_id,
                "podAddressCidrBlocks": [self.pod_cidr],
                "serviceAddressCidrBlocks": [self.service_cidr]
            },
            "controlPlane": {
                "version": self.version,
                "subnetId": self.subnet_id,
                "vmSize": self.vm_size,
                "sshConfig": {
                    "authorizedKey": self.ssh_public_key
                },
                "tags": dict(self.tags)
            },
            "authorization": {
                "adminUsers": [
                    {"username": self.admin_user}
                ]
            },
            "fleet": {
                "project": f"projects/{self.project_number}"
            },
            "azureServicesAuthentication": {
                "tenantId": self.tenant_id,
                "applicationId": self.application_id
            }
        }
        if self.description:
            payload["description"] = self.description
        return validate_payload("azure_cluster", payload)


@dataclass
class AzureNodePoolSpec:
    name: str
    version: str
    subnet_id: str
    vm_size: str
    root_volume_gib: int
    ssh_public_key: str
    min_nodes: int
    max_nodes: int
    max_pods_per_node: int
    availability_zone: str
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, cfg, cluster_name, name, subnet_id, ssh_public_key):
        return cls(
            name=name,
            version=cfg.CLUSTER_VERSION,
            subnet_id=subnet_id,
            vm_size=cfg.NODE_VM_SIZE,
            root_volume_gib=cfg.NODE_ROOT_VOLUME_GIB,
            ssh_public_key=ssh_public_key,
            min_nodes=cfg.NODE_MIN_COUNT,
            max_nodes=cfg.NODE_MAX_COUNT,
            max_pods_per_node=cfg.MAX_PODS_PER_NODE,
            availability_zone=cfg.NODE_AVAILABILITY_ZONE,
            tags={"cluster": cluster_name, "nodepool": name}
        )

    def to_payload(self):
        payload = {
            "name": self.name,
            "version": self.version,
            "subnetId": self.subnet_id,
            "config": {
                "vmSize": self.vm_size,
                "rootVolume": {
                    "sizeGib": self.root_volume_gib
                },
                "sshConfig": {
                    "authorizedKey": self.ssh_public_key
                },
                "tags": dict(self.tags)
            },
            "autoscaling": {
                "minNodeCount": self.min_nodes,
                "maxNodeCount": self.max_nodes
            },
            "maxPodsConstraint": {
                "maxPodsPerNode": self.max_pods_per_node
            },
            "azureAvailabilityZone": self.availability_zone
        }
        return validate_payload("azure_node_pool", payload)
