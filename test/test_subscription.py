import aiohttp
import pytest
from control_plane_server import ControlPlaneServer

from cloud_api_client.cloud_api_client import CloudAPIClient
from cloud_api_client.exceptions import ConvergenceError, TaskError, TransportError
from cloud_api_client.models import (
    ActiveActiveCreateRegionParameters,
    ActiveActiveDeleteRegionParameters,
    ActiveActiveGcpVpcPeeringParameters,
    CidrUpdateParameters,
    ClientConfig,
    CloudProvider,
    CloudProviderRegion,
    CreateSubscriptionParameters,
    DatabaseParameters,
    Networking,
    SubscriptionStatus,
    SubscriptionUpdateParameters,
    VpcPeeringCreationParameters,
    VpcPeeringStatus,
)


def create_parameters(dry_run: bool = False) -> CreateSubscriptionParameters:
    return CreateSubscriptionParameters(
        name="sdk-subscription",
        dry_run=dry_run,
        payment_method_id=1,
        cloud_providers=[
            CloudProvider(
                provider="AWS",
                regions=[
                    CloudProviderRegion(
                        region="us-east-1",
                        networking=Networking(deployment_cidr="192.168.0.0/24"),
                    )
                ],
            )
        ],
        databases=[DatabaseParameters(name="db", memory_limit_in_gb=1)],
    )


def subscription_reads(server: ControlPlaneServer, subscription_id: int) -> int:
    return server.requests.count(("GET", f"/subscriptions/{subscription_id}"))


def test_create_parameters_serialize_to_wire_names():
    body = create_parameters().to_body()

    assert body["paymentMethodId"] == 1
    assert body["cloudProviders"][0]["regions"][0]["networking"] == {
        "deploymentCIDR": "192.168.0.0/24"
    }
    assert body["databases"] == [{"name": "db", "memoryLimitInGb": 1.0}]


@pytest.mark.asyncio
async def test_create_subscription_waits_for_task(server, client, sleep):
    result = await client.subscription.create_subscription(create_parameters())

    assert result.ok
    assert result.resource_id in server.subscriptions
    assert server.task_polls(result.task_id) == 2
    assert sleep.delays == [5]


@pytest.mark.asyncio
async def test_dry_run_returns_plan_inline(client):
    result = await client.subscription.create_subscription(create_parameters(dry_run=True))

    assert result.ok
    assert result.resource_id is None
    assert result.response.resource["pricing"][0]["type"] == "Shards"


@pytest.mark.asyncio
async def test_failed_task_is_returned_as_error_value(server, client):
    subscription_id = server.add_subscription(["active"])
    server.fail_tasks = True

    result = await client.subscription.update_subscription(
        subscription_id, SubscriptionUpdateParameters(name="renamed")
    )

    assert not result.ok
    assert result.response is None
    assert result.error.type == "SUBSCRIPTION_NOT_ACTIVE"
    assert result.error.status == "400 BAD_REQUEST"


@pytest.mark.asyncio
async def test_task_backed_read_raises_on_failed_task(server, client):
    subscription_id = server.add_subscription(["active"])
    server.fail_tasks = True

    with pytest.raises(TaskError):
        await client.subscription.get_vpc_peerings(subscription_id)


@pytest.mark.asyncio
async def test_submission_http_error_is_raised(client):
    with pytest.raises(TransportError) as excinfo:
        await client.subscription.update_subscription(999, SubscriptionUpdateParameters(name="x"))

    assert excinfo.value.status == 404
    assert excinfo.value.error.type == "NOT_FOUND"


@pytest.mark.asyncio
async def test_get_subscription_returns_snapshot_with_extras(server, client):
    subscription_id = server.add_subscription(["active"], name="cache")
    server.subscriptions[subscription_id]["newServerField"] = True

    subscription = await client.subscription.get_subscription(subscription_id)

    assert subscription.id == subscription_id
    assert subscription.name == "cache"
    assert subscription.status is SubscriptionStatus.active
    assert subscription.model_extra == {"newServerField": True}


@pytest.mark.asyncio
async def test_deleted_subscription_lookup_yields_404_status(server, client):
    deleted_id = server.add_subscription([404])

    deleted = await client.subscription.get_subscription(deleted_id)
    missing = await client.subscription.get_subscription(999)

    assert deleted.status is SubscriptionStatus.deleted
    assert deleted.status.value == "404"
    assert missing.id == 999
    assert missing.status is SubscriptionStatus.deleted


@pytest.mark.asyncio
async def test_wait_for_subscription_status_converges(server, client, sleep):
    subscription_id = server.add_subscription(["pending", "pending", "active"])

    subscription = await client.subscription.wait_for_subscription_status(
        subscription_id, SubscriptionStatus.active
    )

    assert subscription.status is SubscriptionStatus.active
    assert subscription_reads(server, subscription_id) == 3
    assert sleep.delays == [5, 5]


@pytest.mark.asyncio
async def test_strict_subscription_wait_raises_on_timeout(server, client, sleep):
    subscription_id = server.add_subscription(["pending"])

    with pytest.raises(ConvergenceError) as excinfo:
        await client.subscription.wait_for_subscription_status(
            subscription_id, SubscriptionStatus.active, timeout=10, interval=5
        )

    error = excinfo.value
    assert error.resource_id == subscription_id
    assert error.status is SubscriptionStatus.pending
    assert (error.elapsed, error.timeout) == (10, 10)
    assert f"Subscription {subscription_id} ended up as 'pending' instead of 'active'" in str(error)
    assert subscription_reads(server, subscription_id) == 3


@pytest.mark.asyncio
async def test_strict_subscription_wait_raises_on_error_status(server, client, sleep):
    subscription_id = server.add_subscription(["pending", "error"])

    with pytest.raises(ConvergenceError) as excinfo:
        await client.subscription.wait_for_subscription_status(
            subscription_id, SubscriptionStatus.active
        )

    assert excinfo.value.status is SubscriptionStatus.error
    assert excinfo.value.elapsed == 5


@pytest.mark.asyncio
async def test_delete_subscription_then_wait_for_removal(server, client):
    subscription_id = server.add_subscription(["active"])

    result = await client.subscription.delete_subscription(subscription_id)
    subscription = await client.subscription.wait_for_subscription_status(
        subscription_id, SubscriptionStatus.deleted
    )

    assert result.ok
    assert result.resource_id == subscription_id
    assert subscription.status is SubscriptionStatus.deleted


@pytest.mark.asyncio
async def test_wait_for_subscriptions_status_keeps_order(server, client):
    first = server.add_subscription(["pending", "active"])
    second = server.add_subscription(["active"])

    subscriptions = await client.subscription.wait_for_subscriptions_status(
        SubscriptionStatus.active
    )

    assert [s.id for s in subscriptions] == [first, second]
    assert all(s.status is SubscriptionStatus.active for s in subscriptions)


@pytest.mark.asyncio
async def test_wait_for_subscriptions_status_aborts_on_first_failure(server, client):
    server.add_subscription(["active"])
    failing = server.add_subscription(["error"])
    never_polled = server.add_subscription(["active"])

    with pytest.raises(ConvergenceError) as excinfo:
        await client.subscription.wait_for_subscriptions_status(SubscriptionStatus.active)

    assert excinfo.value.resource_id == failing
    assert subscription_reads(server, never_polled) == 0


@pytest.mark.asyncio
async def test_peering_wait_returns_failed_peering_without_raising(server, client, sleep):
    subscription_id = server.add_subscription(["active"])
    peering_id = server.add_vpc_peering(subscription_id, ["pending-acceptance", "failed"])

    peering = await client.subscription.wait_for_vpc_peering_status(
        subscription_id, peering_id, VpcPeeringStatus.active
    )

    assert peering.vpc_peering_id == peering_id
    assert peering.status is VpcPeeringStatus.failed
    assert server.requests.count(("GET", f"/subscriptions/{subscription_id}/peerings")) == 2


@pytest.mark.asyncio
async def test_peering_wait_returns_last_snapshot_on_timeout(server, client):
    subscription_id = server.add_subscription(["active"])
    peering_id = server.add_vpc_peering(subscription_id, ["provisioning"])

    peering = await client.subscription.wait_for_vpc_peering_status(
        subscription_id, peering_id, VpcPeeringStatus.active, timeout=10, interval=5
    )

    assert peering.status is VpcPeeringStatus.provisioning
    assert server.requests.count(("GET", f"/subscriptions/{subscription_id}/peerings")) == 3


@pytest.mark.asyncio
async def test_peering_wait_for_unknown_peering_returns_none(server, client):
    subscription_id = server.add_subscription(["active"])

    peering = await client.subscription.wait_for_vpc_peering_status(
        subscription_id, 12345, VpcPeeringStatus.active
    )

    assert peering is None


@pytest.mark.asyncio
async def test_vpc_peering_lifecycle(server, client):
    subscription_id = server.add_subscription(["active"])

    created = await client.subscription.create_subscription_vpc_peering(
        subscription_id,
        VpcPeeringCreationParameters(
            region="us-east-1",
            aws_account_id="123456789012",
            vpc_id="vpc-0125be68a4625884ad",
            vpc_cidr="10.0.0.0/24",
        ),
    )
    peering = await client.subscription.wait_for_vpc_peering_status(
        subscription_id, created.resource_id, VpcPeeringStatus.pending_acceptance
    )
    deleted = await client.subscription.delete_subscription_vpc_peering(
        subscription_id, created.resource_id
    )
    remaining = await client.subscription.get_vpc_peerings(subscription_id)

    assert peering.status is VpcPeeringStatus.pending_acceptance
    assert peering.aws_account_id == "123456789012"
    assert deleted.ok
    assert remaining == []


@pytest.mark.asyncio
async def test_cidr_whitelist_update_and_read(server, client):
    subscription_id = server.add_subscription(["active"])

    result = await client.subscription.update_subscription_cidr_whitelists(
        subscription_id, CidrUpdateParameters(cidr_ips=["10.1.1.0/32"])
    )
    whitelist = await client.subscription.get_subscription_cidr_whitelist(subscription_id)

    assert result.ok
    assert whitelist.cidr_ips == ["10.1.1.0/32"]
    assert whitelist.security_group_ids == []


@pytest.mark.asyncio
async def test_active_active_regions_and_peerings(server, client):
    subscription_id = server.add_subscription(["active"])

    created = await client.subscription.create_active_active_region(
        subscription_id,
        ActiveActiveCreateRegionParameters(region="eu-west-1", deployment_cidr="10.0.1.0/24"),
    )
    regions = await client.subscription.get_active_active_regions(subscription_id)

    peering = await client.subscription.create_active_active_vpc_peering(
        subscription_id,
        ActiveActiveGcpVpcPeeringParameters(
            source_region="eu-west-1", vpc_project_uid="project", vpc_network_name="net"
        ),
    )
    peerings = await client.subscription.get_active_active_vpc_peerings(subscription_id)
    removed_peering = await client.subscription.delete_active_active_vpc_peering(
        subscription_id, peering.resource_id
    )

    deleted = await client.subscription.delete_active_active_region(
        subscription_id,
        ActiveActiveDeleteRegionParameters(regions=[{"region": "eu-west-1"}]),
    )
    after = await client.subscription.get_active_active_regions(subscription_id)

    assert created.ok and deleted.ok and removed_peering.ok
    assert [r.region for r in regions.regions] == ["eu-west-1"]
    assert regions.regions[0].deployment_cidr == "10.0.1.0/24"
    assert peerings.subscription_id == subscription_id
    assert [p.vpc_peering_id for p in peerings.regions[0].vpc_peerings] == [peering.resource_id]
    assert after.regions == []


@pytest.mark.asyncio
async def test_server_unavailable():
    """Connection failures surface as aiohttp errors."""
    stopped = ControlPlaneServer()
    await stopped.start(port=0)
    port = stopped.port
    await stopped.stop()

    async with CloudAPIClient(ClientConfig(base_url=f"http://127.0.0.1:{port}")) as client:
        with pytest.raises(aiohttp.ClientConnectionError):
            await client.subscription.get_subscription(1)


@pytest.mark.asyncio
async def test_list_tasks_reports_submitted_tasks(server, client):
    subscription_id = server.add_subscription(["active"])
    result = await client.subscription.delete_subscription(subscription_id)

    tasks = await client.task.get_tasks()
    task = await client.task.get_task(result.task_id)

    assert [t.task_id for t in tasks] == [result.task_id]
    assert tasks[0].status == "processing-completed"
    assert task.description == "Delete subscription"
    assert task.response.resource_id == subscription_id
