from enum import Enum
from typing import Any, Dict, FrozenSet, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from cloud_api_client.exceptions import TaskError

ResourceT = TypeVar("ResourceT")


class APIModel(BaseModel):
    """Wire model: camelCase on the wire, extra server fields kept in ``model_extra``"""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )


class APIParameters(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# Tasks


class TaskStatus(str, Enum):
    initialized = "initialized"
    received = "received"
    processing_pending = "processing-pending"
    processing_in_progress = "processing-in-progress"
    processing_completed = "processing-completed"
    processing_error = "processing-error"


class ErrorResponse(APIModel):
    type: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None


class TaskResponse(APIModel):
    resource_id: Optional[int] = None
    error: Optional[ErrorResponse] = None
    # Returned for dry runs and for task-backed reads such as VPC peerings
    resource: Optional[Dict[str, Any]] = None


class Task(APIModel):
    task_id: str
    command_type: Optional[str] = None
    status: str
    description: Optional[str] = None
    timestamp: Optional[str] = None
    response: Optional[TaskResponse] = None

    @field_validator("task_id", mode="before")
    @classmethod
    def _task_id_as_str(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class TaskResult(BaseModel):
    """Outcome of a finished task: either the task's response or its structured error"""

    task_id: str
    response: Optional[TaskResponse] = None
    error: Optional[ErrorResponse] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def resource_id(self) -> Optional[int]:
        return self.response.resource_id if self.response else None

    def unwrap(self) -> TaskResponse:
        if self.error is not None:
            raise TaskError(self.task_id, self.error)
        return self.response or TaskResponse()


# Subscriptions


class SubscriptionStatus(str, Enum):
    active = "active"
    pending = "pending"
    error = "error"
    deleting = "deleting"
    deleted = "404"


class VpcPeeringStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    pending_acceptance = "pending-acceptance"
    failed = "failed"
    initiating_request = "initiating-request"
    provisioning = "provisioning"
    deleted = "deleted"
    expired = "expired"
    rejected = "rejected"


class VpcCidrStatus(str, Enum):
    pending_creation = "pending-creation"
    pending_deletion = "pending-deletion"
    active = "active"
    deleted = "deleted"
    failed = "failed"


class DeploymentType(str, Enum):
    single_region = "single-region"
    active_active = "active-active"


class MemoryStorage(str, Enum):
    ram = "ram"
    ram_and_flash = "ram-and-flash"


class CloudProviderName(str, Enum):
    aws = "AWS"
    gcp = "GCP"


class SubscriptionPricing(APIModel):
    type: str
    quantity: Optional[float] = None
    quantity_measurement: Optional[str] = None
    database_name: Optional[str] = None
    type_details: Optional[str] = None
    price_per_unit: Optional[float] = None
    price_currency: Optional[str] = None
    price_period: Optional[str] = None
    name: Optional[str] = None


class Region(APIModel):
    region: str
    networking: List[Dict[str, Any]] = Field(default_factory=list)
    preferred_availability_zones: List[str] = Field(default_factory=list)
    multiple_availability_zones: Optional[bool] = None


class SubscriptionCloudDetails(APIModel):
    provider: Optional[CloudProviderName] = None
    cloud_account_id: Optional[int] = None
    total_size_in_gb: Optional[float] = None
    regions: List[Region] = Field(default_factory=list)


class Subscription(APIModel):
    id: int
    name: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
    deployment_type: Optional[DeploymentType] = None
    payment_method_id: Optional[int] = None
    memory_storage: Optional[MemoryStorage] = None
    storage_encryption: Optional[bool] = None
    number_of_databases: Optional[int] = None
    subscription_pricing: List[SubscriptionPricing] = Field(default_factory=list)
    cloud_details: List[SubscriptionCloudDetails] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_not_found(cls, value: Any) -> Any:
        # The control plane reports deleted subscriptions as a bare 404
        return str(value) if isinstance(value, int) else value


class SubscriptionCidrWhitelist(BaseModel):
    model_config = ConfigDict(extra="allow")

    cidr_ips: List[str] = Field(default_factory=list)
    security_group_ids: List[str] = Field(default_factory=list)
    errors: List[Any] = Field(default_factory=list)


class VpcCidr(APIModel):
    vpc_cidr: str
    status: Optional[VpcCidrStatus] = None


class VpcPeering(APIModel):
    vpc_peering_id: int
    status: Optional[VpcPeeringStatus] = None
    region_id: Optional[int] = None
    region_name: Optional[str] = None
    aws_account_id: Optional[str] = None
    vpc_uid: Optional[str] = None
    vpc_cidr: Optional[str] = None
    vpc_cidrs: List[VpcCidr] = Field(default_factory=list)
    aws_peering_uid: Optional[str] = None
    vpc_project_uid: Optional[str] = None
    vpc_network_name: Optional[str] = None


class ActiveActiveVpcPeeringsRegion(APIModel):
    id: int
    region: str
    vpc_peerings: List[VpcPeering] = Field(default_factory=list)


class ActiveActiveVpcPeerings(APIModel):
    subscription_id: int
    regions: List[ActiveActiveVpcPeeringsRegion] = Field(default_factory=list)


class ActiveActiveRegionInformation(APIModel):
    region_id: int
    region: str
    deployment_cidr: Optional[str] = None
    vpc_id: Optional[str] = None
    databases: List[Dict[str, Any]] = Field(default_factory=list)


class ActiveActiveRegions(APIModel):
    subscription_id: int
    regions: List[ActiveActiveRegionInformation] = Field(default_factory=list)


# Request parameters


class Networking(APIParameters):
    deployment_cidr: str = Field(alias="deploymentCIDR")
    vpc_id: Optional[str] = None


class CloudProviderRegion(APIParameters):
    region: str
    multiple_availability_zones: Optional[bool] = None
    preferred_availability_zones: Optional[List[str]] = None
    networking: Networking


class CloudProvider(APIParameters):
    provider: Optional[CloudProviderName] = None
    cloud_account_id: Optional[int] = None
    regions: List[CloudProviderRegion]


class ThroughputMeasurement(APIParameters):
    by: str
    value: int


class Module(APIParameters):
    name: str
    parameters: Optional[Dict[str, Any]] = None


class DatabaseParameters(APIParameters):
    name: str
    protocol: Optional[str] = None
    memory_limit_in_gb: float
    support_oss_cluster_api: Optional[bool] = Field(
        default=None, alias="supportOSSClusterApi"
    )
    data_persistence: Optional[str] = None
    replication: Optional[bool] = None
    throughput_measurement: Optional[ThroughputMeasurement] = None
    modules: Optional[List[Module]] = None
    quantity: Optional[int] = None
    average_item_size_in_bytes: Optional[int] = None


class CreateSubscriptionParameters(APIParameters):
    name: Optional[str] = None
    dry_run: Optional[bool] = None
    payment_method: Optional[str] = None
    payment_method_id: Optional[int] = None
    deployment_type: Optional[DeploymentType] = None
    memory_storage: Optional[MemoryStorage] = None
    persistent_storage_encryption: Optional[bool] = None
    cloud_providers: List[CloudProvider]
    databases: List[DatabaseParameters]


class SubscriptionUpdateParameters(APIParameters):
    name: Optional[str] = None
    payment_method_id: Optional[int] = None


class CidrUpdateParameters(APIParameters):
    cidr_ips: Optional[List[str]] = None
    security_group_ids: Optional[List[str]] = None


class VpcPeeringCreationParameters(APIParameters):
    region: str
    aws_account_id: str
    vpc_id: str
    vpc_cidr: str


class ActiveActiveAwsVpcPeeringParameters(APIParameters):
    provider: Optional[str] = "aws"
    aws_account_id: str
    destination_region: str
    source_region: str
    vpc_cidr: str
    vpc_id: str


class ActiveActiveGcpVpcPeeringParameters(APIParameters):
    provider: str = "gcp"
    source_region: str
    vpc_project_uid: str
    vpc_network_name: str


class ActiveActiveCreateRegionParameters(APIParameters):
    region: str
    deployment_cidr: str = Field(alias="deploymentCIDR")
    dry_run: Optional[bool] = None
    databases: List[Dict[str, Any]] = Field(default_factory=list)


class ActiveActiveRegion(APIParameters):
    region: str


class ActiveActiveDeleteRegionParameters(APIParameters):
    dry_run: Optional[bool] = None
    regions: List[ActiveActiveRegion]


# Polling


class ClientConfig(BaseModel):
    base_url: str
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    request_timeout: float = Field(default=60.0, gt=0)
    task_poll_interval: float = Field(default=5.0, gt=0)


class StatusPollingConfig(BaseModel):
    timeout: float = Field(default=300.0, ge=0)
    interval: float = Field(default=5.0, gt=0)


SUBSCRIPTION_POLLING = StatusPollingConfig(timeout=20 * 60, interval=5)
VPC_PEERING_POLLING = StatusPollingConfig(timeout=5 * 60, interval=5)


class WaitPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    expected: Any
    error_statuses: FrozenSet[Any] = frozenset()
    timeout: float = Field(ge=0)
    interval: float = Field(gt=0)


class WaitState(str, Enum):
    awaiting = "awaiting"
    converged = "converged"
    errored = "errored"
    timed_out = "timed-out"
    vanished = "vanished"


class WaitOutcome(BaseModel, Generic[ResourceT]):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: WaitState
    resource: Optional[ResourceT] = None
    status: Any = None
    elapsed: float = 0.0
    timeout: float = 0.0
    polls: int = 0

    @property
    def converged(self) -> bool:
        return self.state is WaitState.converged
