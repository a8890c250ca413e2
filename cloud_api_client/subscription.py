from typing import Any, Iterable, List, Optional, Union

from loguru import logger

from cloud_api_client.exceptions import ConvergenceError, TransportError
from cloud_api_client.models import (
    SUBSCRIPTION_POLLING,
    VPC_PEERING_POLLING,
    ActiveActiveAwsVpcPeeringParameters,
    ActiveActiveCreateRegionParameters,
    ActiveActiveDeleteRegionParameters,
    ActiveActiveGcpVpcPeeringParameters,
    ActiveActiveRegions,
    ActiveActiveVpcPeerings,
    CidrUpdateParameters,
    CreateSubscriptionParameters,
    Subscription,
    SubscriptionCidrWhitelist,
    SubscriptionStatus,
    SubscriptionUpdateParameters,
    TaskResult,
    VpcPeering,
    VpcPeeringCreationParameters,
    VpcPeeringStatus,
    WaitPolicy,
)
from cloud_api_client.task import TaskPoller
from cloud_api_client.waiter import wait_for_all_status, wait_for_status


class SubscriptionAPI:
    def __init__(self, transport: Any, tasks: TaskPoller, sleep=None):
        self.transport = transport
        self.tasks = tasks
        self.sleep = sleep
        self.logger = logger

    async def _submit(self, method: str, path: str, body: Optional[dict] = None) -> TaskResult:
        """Submits a mutating request and waits for the task it spawns"""
        data = await self.transport.request(method, path, body)
        task_id = data["taskId"]
        self.logger.debug(f"{method} {path} accepted as task {task_id}")
        return await self.tasks.wait_for_task_status(task_id)

    async def get_subscriptions(self) -> List[Subscription]:
        data = await self.transport.get("/subscriptions")
        return [Subscription.model_validate(item) for item in data.get("subscriptions", [])]

    async def create_subscription(
        self, parameters: CreateSubscriptionParameters
    ) -> TaskResult:
        return await self._submit("POST", "/subscriptions", parameters.to_body())

    async def get_subscription(self, subscription_id: int) -> Subscription:
        """Returns the subscription, or a snapshot with status ``404`` once it is deleted"""
        try:
            data = await self.transport.get(f"/subscriptions/{subscription_id}")
        except TransportError as e:
            if e.not_found:
                return Subscription(id=subscription_id, status=SubscriptionStatus.deleted)
            raise
        return Subscription.model_validate(data)

    async def update_subscription(
        self, subscription_id: int, parameters: SubscriptionUpdateParameters
    ) -> TaskResult:
        return await self._submit(
            "PUT", f"/subscriptions/{subscription_id}", parameters.to_body()
        )

    async def delete_subscription(self, subscription_id: int) -> TaskResult:
        return await self._submit("DELETE", f"/subscriptions/{subscription_id}")

    async def get_subscription_cidr_whitelist(
        self, subscription_id: int
    ) -> SubscriptionCidrWhitelist:
        result = await self._submit("GET", f"/subscriptions/{subscription_id}/cidr")
        return SubscriptionCidrWhitelist.model_validate(result.unwrap().resource or {})

    async def update_subscription_cidr_whitelists(
        self, subscription_id: int, parameters: CidrUpdateParameters
    ) -> TaskResult:
        return await self._submit(
            "PUT", f"/subscriptions/{subscription_id}/cidr", parameters.to_body()
        )

    async def get_vpc_peerings(self, subscription_id: int) -> List[VpcPeering]:
        result = await self._submit("GET", f"/subscriptions/{subscription_id}/peerings")
        resource = result.unwrap().resource or {}
        return [VpcPeering.model_validate(item) for item in resource.get("peerings", [])]

    async def get_active_active_vpc_peerings(
        self, subscription_id: int
    ) -> ActiveActiveVpcPeerings:
        result = await self._submit(
            "GET", f"/subscriptions/{subscription_id}/regions/peerings"
        )
        return ActiveActiveVpcPeerings.model_validate(result.unwrap().resource or {})

    async def create_subscription_vpc_peering(
        self, subscription_id: int, parameters: VpcPeeringCreationParameters
    ) -> TaskResult:
        return await self._submit(
            "POST", f"/subscriptions/{subscription_id}/peerings", parameters.to_body()
        )

    async def create_active_active_vpc_peering(
        self,
        subscription_id: int,
        parameters: Union[
            ActiveActiveAwsVpcPeeringParameters, ActiveActiveGcpVpcPeeringParameters
        ],
    ) -> TaskResult:
        return await self._submit(
            "POST",
            f"/subscriptions/{subscription_id}/regions/peerings",
            parameters.to_body(),
        )

    async def delete_subscription_vpc_peering(
        self, subscription_id: int, vpc_peering_id: int
    ) -> TaskResult:
        return await self._submit(
            "DELETE", f"/subscriptions/{subscription_id}/peerings/{vpc_peering_id}"
        )

    async def delete_active_active_vpc_peering(
        self, subscription_id: int, peering_id: int
    ) -> TaskResult:
        return await self._submit(
            "DELETE", f"/subscriptions/{subscription_id}/regions/peerings/{peering_id}"
        )

    async def get_active_active_regions(self, subscription_id: int) -> ActiveActiveRegions:
        data = await self.transport.get(f"/subscriptions/{subscription_id}/regions")
        return ActiveActiveRegions.model_validate(data)

    async def create_active_active_region(
        self, subscription_id: int, parameters: ActiveActiveCreateRegionParameters
    ) -> TaskResult:
        return await self._submit(
            "POST", f"/subscriptions/{subscription_id}/regions", parameters.to_body()
        )

    async def delete_active_active_region(
        self, subscription_id: int, parameters: ActiveActiveDeleteRegionParameters
    ) -> TaskResult:
        return await self._submit(
            "DELETE", f"/subscriptions/{subscription_id}/regions", parameters.to_body()
        )

    async def wait_for_subscription_status(
        self,
        subscription_id: int,
        expected_status: SubscriptionStatus,
        timeout: float = SUBSCRIPTION_POLLING.timeout,
        interval: float = SUBSCRIPTION_POLLING.interval,
    ) -> Subscription:
        """Waits until the subscription reaches ``expected_status``.

        Raises:
            ConvergenceError: the subscription errored or the timeout elapsed first.
        """
        outcome = await wait_for_status(
            lambda: self.get_subscription(subscription_id),
            lambda subscription: subscription.status,
            WaitPolicy(
                expected=SubscriptionStatus(expected_status),
                error_statuses=frozenset({SubscriptionStatus.error}),
                timeout=timeout,
                interval=interval,
            ),
            sleep=self.sleep,
            description=f"Subscription {subscription_id}",
        )
        if not outcome.converged:
            raise ConvergenceError(
                "Subscription",
                subscription_id,
                outcome.status,
                expected_status,
                outcome.elapsed,
                outcome.timeout,
            )
        return outcome.resource

    async def wait_for_subscriptions_status(
        self,
        expected_status: SubscriptionStatus,
        timeout: float = SUBSCRIPTION_POLLING.timeout,
        interval: float = SUBSCRIPTION_POLLING.interval,
    ) -> List[Subscription]:
        return await wait_for_all_status(
            self.get_subscriptions,
            lambda subscription: self.wait_for_subscription_status(
                subscription.id, expected_status, timeout, interval
            ),
        )

    async def wait_for_vpc_peering_status(
        self,
        subscription_id: int,
        vpc_peering_id: int,
        expected_status: VpcPeeringStatus,
        timeout: float = VPC_PEERING_POLLING.timeout,
        interval: float = VPC_PEERING_POLLING.interval,
        error_statuses: Iterable[VpcPeeringStatus] = (VpcPeeringStatus.failed,),
    ) -> Optional[VpcPeering]:
        """Waits for a VPC peering status and returns the last peering observed.

        Does not raise when the peering fails or the timeout elapses; compare
        the returned peering's status with ``expected_status``.
        """

        async def fetch() -> Optional[VpcPeering]:
            peerings = await self.get_vpc_peerings(subscription_id)
            return next(
                (p for p in peerings if p.vpc_peering_id == vpc_peering_id), None
            )

        outcome = await wait_for_status(
            fetch,
            lambda peering: peering.status,
            WaitPolicy(
                expected=VpcPeeringStatus(expected_status),
                error_statuses=frozenset(error_statuses),
                timeout=timeout,
                interval=interval,
            ),
            sleep=self.sleep,
            description=f"VPC peering {vpc_peering_id}",
        )
        return outcome.resource
