import pytest

from kubedock.model.container import Container
from kubedock.model.database import Database, NotFoundError
from kubedock.routes.base import ApiError, ApiRequest
from kubedock.routes.networks import NetworkRoutes


@pytest.fixture
def router():
    return NetworkRoutes(object(), db=Database())


def _create(router, name):
    res = router.networks_create(ApiRequest(body=('{"Name": "%s"}' % name).encode()))
    return res.body["Id"]


def _container(router, name="tainr"):
    container = Container(name=name)
    router.db.save_container(container)
    return container


def test_list_holds_default_networks(router):
    res = router.networks_list(ApiRequest())
    assert res.status == 200
    assert {n["Name"] for n in res.body} == {"null", "host", "bridge"}
    assert all(n["Driver"] == "bridge" and n["Scope"] == "local" for n in res.body)


def test_create_and_info(router):
    id = _create(router, "net0")
    by_name = router.networks_info(ApiRequest(params={"id": "net0"}))
    assert by_name.status == 200
    assert by_name.body["ID"] == id
    by_id = router.networks_info(ApiRequest(params={"id": id}))
    assert by_id.body["Name"] == "net0"
    assert by_id.body["Containers"] == {}


def test_create_invalid_body(router):
    with pytest.raises(ApiError) as err:
        router.networks_create(ApiRequest(body=b"{not json"))
    assert err.value.status == 500


def test_info_missing(router):
    with pytest.raises(ApiError) as err:
        router.networks_info(ApiRequest(params={"id": "missing"}))
    assert err.value.status == 404


def test_delete_predefined_refused(router):
    with pytest.raises(ApiError) as err:
        router.networks_delete(ApiRequest(params={"id": "bridge"}))
    assert err.value.status == 403
    assert "pre-defined" in err.value.message


def test_delete_with_containers_refused(router):
    id = _create(router, "net0")
    container = _container(router)
    container.connect_network(id)
    with pytest.raises(ApiError) as err:
        router.networks_delete(ApiRequest(params={"id": id}))
    assert err.value.status == 403


def test_delete(router):
    id = _create(router, "net0")
    res = router.networks_delete(ApiRequest(params={"id": "net0"}))
    assert res.status == 204
    with pytest.raises(NotFoundError):
        router.db.get_network(id)


def test_connect_adds_network_and_aliases(router):
    id = _create(router, "net0")
    container = _container(router)
    body = ('{"container": "%s", "EndpointConfig": {"Aliases": ["TB303"]}}' % container.id)
    res = router.networks_connect(ApiRequest(params={"id": "net0"}, body=body.encode()))
    assert res.status == 201
    assert res.body == {"ID": id}
    stored = router.db.get_container(container.id)
    assert id in stored.networks
    assert stored.network_aliases == ["tb303"]
    info = router.networks_info(ApiRequest(params={"id": id}))
    assert info.body["Containers"] == {container.id: {"Name": "tainr"}}


def test_connect_unknown_container(router):
    _create(router, "net0")
    with pytest.raises(ApiError) as err:
        router.networks_connect(
            ApiRequest(params={"id": "net0"}, body=b'{"container": "nope"}')
        )
    assert err.value.status == 404


def test_disconnect(router):
    id = _create(router, "net0")
    container = _container(router)
    container.connect_network(id)
    body = ('{"container": "%s"}' % container.id).encode()
    res = router.networks_disconnect(ApiRequest(params={"id": id}, body=body))
    assert res.status == 204
    assert id not in router.db.get_container(container.id).networks
    with pytest.raises(ApiError) as err:
        router.networks_disconnect(ApiRequest(params={"id": id}, body=body))
    assert err.value.status == 404


def test_prune(router):
    used = _create(router, "used")
    _create(router, "unused")
    container = _container(router)
    container.connect_network(used)
    res = router.networks_prune(ApiRequest())
    assert res.status == 201
    assert res.body == {"NetworksDeleted": ["unused"]}
    names = {n.name for n in router.db.get_networks()}
    assert names == {"null", "host", "bridge", "used"}


def test_containers_in_network(router):
    id = _create(router, "net0")
    inside = _container(router, "inside")
    _container(router, "outside")
    inside.connect_network(id)
    network = router.db.get_network(id)
    assert router.containers_in_network(network) == {inside.id: {"Name": "inside"}}