import asyncio

from control_plane_server import ControlPlaneServer
from cloud_api_client.cloud_api_client import CloudAPIClient
from cloud_api_client.exceptions import ConvergenceError
from cloud_api_client.models import (
    ClientConfig,
    CloudProvider,
    CloudProviderRegion,
    CreateSubscriptionParameters,
    DatabaseParameters,
    Networking,
    SubscriptionStatus,
    VpcPeeringCreationParameters,
    VpcPeeringStatus,
)


async def main():
    server = ControlPlaneServer(task_steps=2)
    await server.start(port=8000)
    print(f"Control plane started on http://127.0.0.1:{server.port}")

    config = ClientConfig(
        base_url=f"http://127.0.0.1:{server.port}",
        access_key="example-key",
        secret_key="example-secret",
        task_poll_interval=0.5,
    )

    async with CloudAPIClient(config) as client:
        result = await client.subscription.create_subscription(
            CreateSubscriptionParameters(
                name="example",
                payment_method_id=1,
                cloud_providers=[
                    CloudProvider(
                        regions=[
                            CloudProviderRegion(
                                region="us-east-1",
                                networking=Networking(deployment_cidr="192.168.0.0/24"),
                            )
                        ]
                    )
                ],
                databases=[DatabaseParameters(name="cache", memory_limit_in_gb=1)],
            )
        )
        if not result.ok:
            print(f"Subscription creation failed: {result.error.description}")
            return

        subscription_id = result.resource_id
        try:
            subscription = await client.subscription.wait_for_subscription_status(
                subscription_id, SubscriptionStatus.active, timeout=10, interval=1
            )
            print(f"Subscription {subscription.id} is {subscription.status.value}")
        except ConvergenceError as e:
            print(f"Subscription did not become active: {e}")
            return

        peering = await client.subscription.create_subscription_vpc_peering(
            subscription_id,
            VpcPeeringCreationParameters(
                region="us-east-1",
                aws_account_id="123456789012",
                vpc_id="vpc-0125be68a4625884ad",
                vpc_cidr="10.0.0.0/24",
            ),
        )
        vpc_peering = await client.subscription.wait_for_vpc_peering_status(
            subscription_id,
            peering.resource_id,
            VpcPeeringStatus.pending_acceptance,
            timeout=10,
            interval=1,
        )
        print(f"VPC peering {peering.resource_id} is {vpc_peering.status.value}")

        await client.subscription.delete_subscription(subscription_id)
        await client.subscription.wait_for_subscription_status(
            subscription_id, SubscriptionStatus.deleted, timeout=10, interval=1
        )
        print(f"Subscription {subscription_id} deleted")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
