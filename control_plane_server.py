import itertools
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Tuple

from aiohttp import web
from loguru import logger


class ControlPlaneServer:
    """Scripted stand-in for the provisioning control plane.

    Every mutating request answers with a task that reports
    ``processing-in-progress`` for ``task_steps`` polls before it finishes.
    Subscriptions and VPC peerings walk through scripted status sequences,
    one step per read, and then stay on their last status.
    """

    def __init__(self, task_steps: int = 1, fail_tasks: bool = False):
        self.task_steps = task_steps
        self.fail_tasks = fail_tasks
        self.port: Optional[int] = None
        self.requests: List[Tuple[str, str]] = []
        self.subscriptions: Dict[int, Dict[str, Any]] = {}
        self.subscription_statuses: Dict[int, Deque[Any]] = {}
        self.peerings: Dict[int, Dict[int, Dict[str, Any]]] = {}
        self.peering_statuses: Dict[Tuple[int, int], Deque[str]] = {}
        self.cidr: Dict[int, Dict[str, List[str]]] = {}
        self.regions: Dict[int, List[Dict[str, Any]]] = {}
        self.tasks: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self._task_ids = itertools.count(1)
        self._runner: Optional[web.AppRunner] = None
        self.logger = logger

        self.app = web.Application(middlewares=[self._record])
        self.app.router.add_get("/subscriptions", self.handle_list_subscriptions)
        self.app.router.add_post("/subscriptions", self.handle_create_subscription)
        self.app.router.add_get("/subscriptions/{sid}", self.handle_get_subscription)
        self.app.router.add_put("/subscriptions/{sid}", self.handle_update_subscription)
        self.app.router.add_delete("/subscriptions/{sid}", self.handle_delete_subscription)
        self.app.router.add_get("/subscriptions/{sid}/cidr", self.handle_get_cidr)
        self.app.router.add_put("/subscriptions/{sid}/cidr", self.handle_update_cidr)
        self.app.router.add_get("/subscriptions/{sid}/peerings", self.handle_get_peerings)
        self.app.router.add_post("/subscriptions/{sid}/peerings", self.handle_create_peering)
        self.app.router.add_delete(
            "/subscriptions/{sid}/peerings/{pid}", self.handle_delete_peering
        )
        self.app.router.add_get(
            "/subscriptions/{sid}/regions/peerings", self.handle_get_regional_peerings
        )
        self.app.router.add_post(
            "/subscriptions/{sid}/regions/peerings", self.handle_create_regional_peering
        )
        self.app.router.add_delete(
            "/subscriptions/{sid}/regions/peerings/{pid}", self.handle_delete_peering
        )
        self.app.router.add_get("/subscriptions/{sid}/regions", self.handle_get_regions)
        self.app.router.add_post("/subscriptions/{sid}/regions", self.handle_create_region)
        self.app.router.add_delete("/subscriptions/{sid}/regions", self.handle_delete_regions)
        self.app.router.add_get("/tasks", self.handle_list_tasks)
        self.app.router.add_get("/tasks/{task_id}", self.handle_get_task)

    # Scripting helpers

    def add_subscription(self, statuses: List[Any], name: str = "subscription") -> int:
        subscription_id = next(self._ids)
        self.subscriptions[subscription_id] = {
            "id": subscription_id,
            "name": name,
            "status": statuses[0],
            "deploymentType": "single-region",
            "numberOfDatabases": 0,
            "cloudDetails": [],
        }
        self.subscription_statuses[subscription_id] = deque(statuses)
        self.peerings[subscription_id] = {}
        self.cidr[subscription_id] = {"cidr_ips": [], "security_group_ids": []}
        self.regions[subscription_id] = []
        return subscription_id

    def add_vpc_peering(self, subscription_id: int, statuses: List[str]) -> int:
        peering_id = next(self._ids)
        self.peerings[subscription_id][peering_id] = {
            "vpcPeeringId": peering_id,
            "status": statuses[0],
            "regionName": "us-east-1",
        }
        self.peering_statuses[(subscription_id, peering_id)] = deque(statuses)
        return peering_id

    def task_polls(self, task_id: str) -> int:
        return sum(
            1 for method, path in self.requests if method == "GET" and path == f"/tasks/{task_id}"
        )

    # Internals

    @web.middleware
    async def _record(self, request: web.Request, handler):
        self.requests.append((request.method, request.path))
        return await handler(request)

    @staticmethod
    def _advance(script: Deque[Any]) -> Any:
        if len(script) > 1:
            return script.popleft()
        return script[0]

    def _not_found(self, what: str) -> web.Response:
        return web.json_response(
            {"error": {"type": "NOT_FOUND", "status": "404 NOT_FOUND", "description": what}},
            status=404,
        )

    def _subscription(self, request: web.Request) -> Optional[int]:
        subscription_id = int(request.match_info["sid"])
        return subscription_id if subscription_id in self.subscriptions else None

    def _task(self, response: Dict[str, Any], description: str) -> web.Response:
        task_id = f"task-{next(self._task_ids)}"
        final = "processing-error" if self.fail_tasks else "processing-completed"
        if self.fail_tasks:
            response = {
                "error": {
                    "type": "SUBSCRIPTION_NOT_ACTIVE",
                    "status": "400 BAD_REQUEST",
                    "description": "Cannot apply the request to this subscription",
                }
            }
        self.tasks[task_id] = {
            "steps": self.task_steps,
            "final": final,
            "description": description,
            "response": response,
        }
        self.logger.info(f"Accepted task {task_id}: {description}")
        return web.json_response(
            {"taskId": task_id, "status": "received", "description": description},
            status=202,
        )

    # Handlers

    async def handle_get_task(self, request: web.Request) -> web.Response:
        task_id = request.match_info["task_id"]
        task = self.tasks.get(task_id)
        if task is None:
            return self._not_found(f"Task {task_id} not found")

        body = {
            "taskId": task_id,
            "commandType": "command",
            "description": task["description"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if task["steps"] > 0:
            task["steps"] -= 1
            body["status"] = "processing-in-progress"
        else:
            body["status"] = task["final"]
            body["response"] = task["response"]
        return web.json_response(body)

    async def handle_list_tasks(self, request: web.Request) -> web.Response:
        tasks = [
            {
                "taskId": task_id,
                "status": "processing-in-progress" if task["steps"] > 0 else task["final"],
                "description": task["description"],
            }
            for task_id, task in self.tasks.items()
        ]
        return web.json_response(tasks)

    async def handle_list_subscriptions(self, request: web.Request) -> web.Response:
        subscriptions = [
            dict(data) for data in self.subscriptions.values() if data["status"] != 404
        ]
        return web.json_response({"accountId": 1, "subscriptions": subscriptions})

    async def handle_create_subscription(self, request: web.Request) -> web.Response:
        body = await request.json()
        if body.get("dryRun"):
            pricing = [{"type": "Shards", "quantity": 2, "quantityMeasurement": "shards"}]
            return self._task({"resource": {"pricing": pricing}}, "Dry run subscription")
        subscription_id = self.add_subscription(
            ["pending", "active"], name=body.get("name", "subscription")
        )
        return self._task({"resourceId": subscription_id}, "Create subscription")

    async def handle_get_subscription(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")

        status = self._advance(self.subscription_statuses[subscription_id])
        self.subscriptions[subscription_id]["status"] = status
        if status == 404:
            return self._not_found(f"Subscription {subscription_id} not found")
        return web.json_response(self.subscriptions[subscription_id])

    async def handle_update_subscription(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        body = await request.json()
        self.subscriptions[subscription_id].update(body)
        return self._task({"resourceId": subscription_id}, "Update subscription")

    async def handle_delete_subscription(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        self.subscription_statuses[subscription_id] = deque(["deleting", 404])
        return self._task({"resourceId": subscription_id}, "Delete subscription")

    async def handle_get_cidr(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        resource = {**self.cidr[subscription_id], "errors": []}
        return self._task({"resourceId": subscription_id, "resource": resource}, "Get CIDR")

    async def handle_update_cidr(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        body = await request.json()
        self.cidr[subscription_id] = {
            "cidr_ips": body.get("cidrIps", []),
            "security_group_ids": body.get("securityGroupIds", []),
        }
        return self._task({"resourceId": subscription_id}, "Update CIDR whitelist")

    def _peering_snapshot(self, subscription_id: int) -> List[Dict[str, Any]]:
        peerings = []
        for peering_id, peering in self.peerings[subscription_id].items():
            script = self.peering_statuses[(subscription_id, peering_id)]
            peering["status"] = self._advance(script)
            if peering["status"] != "deleted":
                peerings.append(dict(peering))
        return peerings

    async def handle_get_peerings(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        peerings = self._peering_snapshot(subscription_id)
        return self._task(
            {"resourceId": subscription_id, "resource": {"peerings": peerings}},
            "Get VPC peerings",
        )

    async def handle_create_peering(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        body = await request.json()
        peering_id = self.add_vpc_peering(
            subscription_id, ["initiating-request", "pending-acceptance"]
        )
        self.peerings[subscription_id][peering_id].update(
            {"awsAccountId": body.get("awsAccountId"), "vpcUid": body.get("vpcId")}
        )
        return self._task({"resourceId": peering_id}, "Create VPC peering")

    async def handle_delete_peering(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        peering_id = int(request.match_info["pid"])
        if subscription_id is None or peering_id not in self.peerings[subscription_id]:
            return self._not_found(f"VPC peering {peering_id} not found")
        self.peering_statuses[(subscription_id, peering_id)] = deque(["deleted"])
        return self._task({"resourceId": peering_id}, "Delete VPC peering")

    async def handle_get_regional_peerings(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        peerings = self._peering_snapshot(subscription_id)
        resource = {
            "subscriptionId": subscription_id,
            "regions": [{"id": 1, "region": "us-east-1", "vpcPeerings": peerings}],
        }
        return self._task(
            {"resourceId": subscription_id, "resource": resource},
            "Get Active-Active VPC peerings",
        )

    async def handle_create_regional_peering(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        peering_id = self.add_vpc_peering(
            subscription_id, ["initiating-request", "pending-acceptance"]
        )
        return self._task({"resourceId": peering_id}, "Create Active-Active VPC peering")

    async def handle_get_regions(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        return web.json_response(
            {"subscriptionId": subscription_id, "regions": self.regions[subscription_id]}
        )

    async def handle_create_region(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        body = await request.json()
        if not body.get("dryRun"):
            self.regions[subscription_id].append(
                {
                    "regionId": len(self.regions[subscription_id]) + 1,
                    "region": body["region"],
                    "deploymentCidr": body.get("deploymentCIDR"),
                    "databases": [],
                }
            )
        return self._task({"resourceId": subscription_id}, "Create Active-Active region")

    async def handle_delete_regions(self, request: web.Request) -> web.Response:
        subscription_id = self._subscription(request)
        if subscription_id is None:
            return self._not_found(f"Subscription {request.match_info['sid']} not found")
        body = await request.json()
        removed = {region["region"] for region in body.get("regions", [])}
        self.regions[subscription_id] = [
            region for region in self.regions[subscription_id] if region["region"] not in removed
        ]
        return self._task({"resourceId": subscription_id}, "Delete Active-Active regions")

    async def start(self, port: int = 0):
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "127.0.0.1", port)
        await site.start()
        self.port = self._runner.addresses[0][1]
        self.logger.info(f"Control plane started on port {self.port}")
        return site

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
