import io
import json
from datetime import datetime, timezone

import pytest

from kubedock.model.container import (
    LABEL_DEPLOY_AS_JOB,
    LABEL_PULL_POLICY,
    LABEL_REQUEST_CPU,
    LABEL_REQUEST_MEMORY,
    Container,
)
from kubedock.model.database import Database
from kubedock.model.records import Image
from kubedock.routes.base import ApiError, ApiRequest, DeployState, RouterConfig
from kubedock.routes.containers import ContainerRoutes


class FakeBackend:
    def __init__(self, state=DeployState.RUNNING, fail_start=False):
        self.state = state
        self.fail_start = fail_start
        self.status = DeployState.RUNNING
        self.deleted = []
        self.port_forwards = []
        self.proxies = []

    def start_container(self, container):
        if self.fail_start:
            raise RuntimeError("deploy failed")
        return self.state

    def get_container_status(self, container):
        return self.status

    def delete_container(self, container):
        self.deleted.append(container.id)

    def get_logs(self, container, follow, count, stop, out):
        out.write(b"log line\n")

    def create_port_forwards(self, container):
        self.port_forwards.append(container.id)

    def create_reverse_proxies(self, container):
        self.proxies.append(container.id)

    def get_pod_ip(self, container):
        return "10.0.0.1"


def make_routes(config=None, backend=None):
    routes = ContainerRoutes(backend or FakeBackend(), config or RouterConfig(), Database())
    routes.restart_delay = 0
    routes.wait_interval = 0
    return routes


def create(routes, body, query=None):
    resp = routes.container_create(
        ApiRequest(body=json.dumps(body).encode(), query=query or {})
    )
    return routes.db.get_container(resp.body["Id"]), resp


@pytest.mark.parametrize(
    "container,portfw,expected",
    [
        (Container(host_ip="", mapped_ports={303: 101}), True, {}),
        (
            Container(host_ip="127.0.0.1", mapped_ports={303: 101}),
            True,
            {"101/tcp": [{"HostIp": "127.0.0.1", "HostPort": "303"}]},
        ),
        (
            Container(host_ip="127.0.0.1", host_ports={303: 101}),
            True,
            {"101/tcp": [{"HostIp": "127.0.0.1", "HostPort": "303"}]},
        ),
        (
            Container(host_ip="127.0.0.1", mapped_ports={303: 101}, host_ports={303: 101}),
            True,
            {"101/tcp": [{"HostIp": "127.0.0.1", "HostPort": "303"}]},
        ),
        (Container(host_ip="127.0.0.1", mapped_ports={-303: 303}), True, {}),
        (
            Container(host_ip="127.0.0.1", mapped_ports={303: 101}, host_ports={202: 101}),
            True,
            {
                "101/tcp": [
                    {"HostIp": "127.0.0.1", "HostPort": "202"},
                    {"HostIp": "127.0.0.1", "HostPort": "303"},
                ]
            },
        ),
        (
            Container(host_ip="127.0.0.1", mapped_ports={303: 101}),
            False,
            {"101/tcp": [{"HostIp": "127.0.0.1", "HostPort": "303"}]},
        ),
    ],
)
def test_network_settings_ports(container, portfw, expected):
    routes = make_routes(RouterConfig(port_forward=portfw))
    assert routes.network_settings_ports(container) == expected


@pytest.mark.parametrize(
    "container,expected",
    [
        (Container(host_ip="", mapped_ports={303: 101}), []),
        (
            Container(host_ip="127.0.0.1", mapped_ports={303: 101}),
            [{"IP": "127.0.0.1", "PrivatePort": 101, "PublicPort": 303, "Type": "tcp"}],
        ),
        (
            Container(host_ip="127.0.0.1", host_ports={303: 101}),
            [{"IP": "127.0.0.1", "PrivatePort": 101, "PublicPort": 303, "Type": "tcp"}],
        ),
        (
            Container(host_ip="127.0.0.1", mapped_ports={303: 101}, host_ports={303: 101}),
            [{"IP": "127.0.0.1", "PrivatePort": 101, "PublicPort": 303, "Type": "tcp"}],
        ),
        (Container(host_ip="127.0.0.1", mapped_ports={-303: 303}), []),
        (
            Container(host_ip="127.0.0.1", mapped_ports={303: 101}, host_ports={202: 101}),
            [
                {"IP": "127.0.0.1", "PrivatePort": 101, "PublicPort": 202, "Type": "tcp"},
                {"IP": "127.0.0.1", "PrivatePort": 101, "PublicPort": 303, "Type": "tcp"},
            ],
        ),
    ],
)
def test_container_ports(container, expected):
    routes = make_routes(RouterConfig(port_forward=True))
    assert routes.container_ports(container) == expected


def test_container_names():
    routes = make_routes()
    container = Container(
        id="12345678",
        short_id="1234",
        name="mrghost",
        network_aliases=["mrghost", "metalgear"],
    )
    assert routes.container_names(container) == [
        "/mrghost",
        "/12345678",
        "/1234",
        "/metalgear",
    ]


def test_available_ports_uses_service_ports_without_forwarding():
    routes = make_routes()
    container = Container(exposed_ports={"8080/tcp": {}}, host_ports={-9000: 9000})
    assert routes.available_ports(container) == {8080: [8080], 9000: [9000]}


def test_create_stores_container_on_bridge():
    routes = make_routes()
    container, resp = create(routes, {"image": "busybox", "Cmd": ["sh"]}, {"name": "box"})
    assert resp.status == 201
    assert container.name == "box"
    assert container.cmd == ["sh"]
    bridge = routes.db.get_network_by_name("bridge")
    assert container.networks == {bridge.id}


def test_create_applies_config_label_defaults():
    config = RouterConfig(
        request_cpu="100m",
        request_memory="64Mi",
        pull_policy="always",
        deploy_as_job=True,
        runas_user="1000",
    )
    routes = make_routes(config)
    container, _ = create(routes, {"image": "busybox"})
    assert container.labels == {
        LABEL_REQUEST_CPU: "100m",
        LABEL_REQUEST_MEMORY: "64Mi",
        LABEL_PULL_POLICY: "always",
        LABEL_DEPLOY_AS_JOB: "true",
    }
    assert container.user == "1000"


def test_create_host_config_resources_override_labels():
    routes = make_routes(RouterConfig(request_cpu="100m"))
    container, _ = create(
        routes,
        {"image": "busybox", "HostConfig": {"Memory": 209715200, "NanoCpus": 1000000000}},
    )
    assert container.labels[LABEL_REQUEST_MEMORY] == "209715200"
    assert container.labels[LABEL_REQUEST_CPU] == "1000000000n"


def test_create_port_bindings_and_aliases():
    routes = make_routes()
    container, _ = create(
        routes,
        {
            "image": "busybox",
            "HostConfig": {"PortBindings": {"80/tcp": [{"HostPort": "8080"}, {"HostPort": ""}]}},
            "NetworkingConfig": {"EndpointsConfig": {"net": {"Aliases": ["Web"]}}},
        },
    )
    assert container.host_ports == {8080: 80, -80: 80}
    assert container.network_aliases == ["web"]


def test_create_uses_image_ports():
    routes = make_routes()
    routes.db.save_image(Image(name="nginx", exposed_ports={"80/tcp": {}}))
    container, _ = create(routes, {"image": "nginx"})
    assert container.image_ports == {"80/tcp": "80/tcp"}


def test_create_invalid_port_binding():
    routes = make_routes()
    body = {"image": "x", "HostConfig": {"PortBindings": {"80/udp": [{"HostPort": "1"}]}}}
    with pytest.raises(ApiError) as info:
        routes.container_create(ApiRequest(body=json.dumps(body).encode()))
    assert info.value.status == 500


def test_create_invalid_json():
    routes = make_routes()
    with pytest.raises(ApiError) as info:
        routes.container_create(ApiRequest(body=b"{nope"))
    assert info.value.status == 500


def test_start_unknown_container():
    routes = make_routes()
    with pytest.raises(ApiError) as info:
        routes.container_start(ApiRequest(params={"id": "missing"}))
    assert info.value.status == 404


def test_start_sets_running_and_pod_ip():
    routes = make_routes()
    container, _ = create(routes, {"image": "busybox", "ExposedPorts": {"80/tcp": {}}})
    resp = routes.container_start(ApiRequest(params={"id": container.id}))
    assert resp.status == 204
    assert container.running is True
    assert container.host_ip == "10.0.0.1"


def test_start_with_port_forward():
    backend = FakeBackend()
    routes = make_routes(RouterConfig(port_forward=True), backend)
    container, _ = create(routes, {"image": "busybox"})
    routes.container_start(ApiRequest(params={"id": container.id}))
    assert container.host_ip == "0.0.0.0"
    assert backend.port_forwards == [container.id]


def test_start_failure_is_500():
    routes = make_routes(backend=FakeBackend(fail_start=True))
    container, _ = create(routes, {"image": "busybox"})
    with pytest.raises(ApiError) as info:
        routes.container_start(ApiRequest(params={"id": container.id}))
    assert info.value.status == 500


def test_stop_deletes_deployment():
    backend = FakeBackend()
    routes = make_routes(backend=backend)
    container, _ = create(routes, {"image": "busybox"})
    routes.container_start(ApiRequest(params={"id": container.id}))
    resp = routes.container_stop(ApiRequest(params={"id": container.id}))
    assert resp.status == 204
    assert container.stopped is True
    assert container.running is False
    assert backend.deleted == [container.id]


def test_kill_int_only_detaches():
    backend = FakeBackend()
    routes = make_routes(backend=backend)
    container, _ = create(routes, {"image": "busybox"})
    routes.container_kill(ApiRequest(params={"id": container.id}, query={"signal": "SIGINT"}))
    assert container.killed is False
    assert backend.deleted == []


def test_kill_ignores_other_signals():
    routes = make_routes()
    container, _ = create(routes, {"image": "busybox"})
    resp = routes.container_kill(
        ApiRequest(params={"id": container.id}, query={"signal": "SIGHUP"})
    )
    assert resp.status == 204
    assert container.killed is False


def test_kill_marks_killed():
    backend = FakeBackend()
    routes = make_routes(backend=backend)
    container, _ = create(routes, {"image": "busybox"})
    routes.container_kill(ApiRequest(params={"id": container.id}))
    assert container.killed is True
    assert backend.deleted == [container.id]


def test_delete_removes_record():
    routes = make_routes()
    container, _ = create(routes, {"image": "busybox"})
    resp = routes.container_delete(ApiRequest(params={"id": container.id}))
    assert resp.status == 204
    assert routes.db.get_containers() == []
    with pytest.raises(ApiError) as info:
        routes.container_delete(ApiRequest(params={"id": container.id}))
    assert info.value.status == 404


def test_restart_starts_again():
    backend = FakeBackend()
    routes = make_routes(backend=backend)
    container, _ = create(routes, {"image": "busybox"})
    resp = routes.container_restart(ApiRequest(params={"id": container.id}))
    assert resp.status == 204
    assert container.running is True
    assert container.stopped is False
    assert backend.deleted == [container.id]


def test_attach_without_stream():
    routes = make_routes()
    container, _ = create(routes, {"image": "busybox"})
    resp = routes.container_attach(ApiRequest(params={"id": container.id}))
    assert resp.status == 204
    assert container.running is True


def test_attach_stream_writes_upgrade_and_logs():
    routes = make_routes()
    container, _ = create(routes, {"image": "busybox"})
    request = ApiRequest(
        params={"id": container.id},
        query={"stream": "1"},
        headers={"Upgrade": "tcp"},
    )
    resp = routes.container_attach(request)
    assert resp.status == 200
    out = io.BytesIO()
    resp.stream(out)
    data = out.getvalue()
    assert data.startswith(b"HTTP/1.1 101 UPGRADED\r\n")
    assert data.endswith(b"\r\n\r\nlog line\n")
    assert len(container.attach_channels) == 1


def test_wait_returns_for_completed_container():
    routes = make_routes()
    container, _ = create(routes, {"image": "busybox"})
    container.completed = True
    resp = routes.container_wait(ApiRequest(params={"id": container.id}))
    assert resp.status == 200
    assert resp.body == {"StatusCode": 0}


def test_wait_picks_up_backend_completion():
    backend = FakeBackend()
    backend.status = DeployState.COMPLETED
    routes = make_routes(backend=backend)
    container, _ = create(routes, {"image": "busybox"})
    resp = routes.container_wait(ApiRequest(params={"id": container.id}))
    assert resp.body == {"StatusCode": 0}
    assert container.completed is True


def test_wait_for_unknown_container():
    routes = make_routes()
    resp = routes.container_wait(ApiRequest(params={"id": "missing"}))
    assert resp.body == {"StatusCode": 0}


def test_info_details():
    routes = make_routes()
    container, _ = create(routes, {"image": "busybox"}, {"name": "box"})
    routes.container_start(ApiRequest(params={"id": container.id}))
    container.created = datetime(2021, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    resp = routes.container_info(ApiRequest(params={"id": container.id}))
    body = resp.body
    assert body["Name"] == "/box"
    assert body["State"]["Status"] == "Up"
    assert body["State"]["Health"]["Status"] == "healthy"
    assert body["Created"] == "2021-01-02T03:04:05Z"
    assert body["State"]["FinishedAt"] == "0001-01-01T00:00:00Z"
    assert body["NetworkSettings"]["Networks"]["bridge"]["IPAddress"] == "127.0.0.1"


def test_list_applies_filter():
    routes = make_routes()
    create(routes, {"image": "a", "Labels": {"app": "one"}})
    create(routes, {"image": "b", "Labels": {"app": "two"}})
    resp = routes.container_list(
        ApiRequest(query={"filters": json.dumps({"label": ["app=two"]})})
    )
    assert [item["Image"] for item in resp.body] == ["b"]
    assert resp.body[0]["Status"] == "Created"
    assert resp.body[0]["State"] == "unhealthy"


def test_list_with_bad_filter_returns_all():
    routes = make_routes()
    create(routes, {"image": "a"})
    create(routes, {"image": "b"})
    resp = routes.container_list(ApiRequest(query={"filters": "{bad"}))
    assert sorted(item["Image"] for item in resp.body) == ["a", "b"]


def test_list_created_unix_of_zero_time():
    routes = make_routes()
    container = Container(id="abc", short_id="abc")
    details = routes.container_details(container, False)
    assert details["Created"] == -62135596800
    assert details["Ports"] == []