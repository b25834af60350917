import time
from datetime import datetime, timedelta, timezone

from kubedock.model.container import Container
from kubedock.model.database import Database
from kubedock.model.records import Exec
from kubedock.reaper import Reaper


class FakeBackend:
    def __init__(self, fail=False):
        self.fail = fail
        self.deleted = []
        self.older_than = []

    def delete_container(self, container):
        self.deleted.append(container)
        if self.fail:
            raise RuntimeError("backend down")

    def delete_older_than(self, age):
        self.older_than.append(age)
        if self.fail:
            raise RuntimeError("backend down")


def test_clean_containers():
    db = Database()
    backend = FakeBackend()
    rp = Reaper(db, backend, timedelta(milliseconds=20))
    container = Container()
    db.save_container(container)
    rp.clean_containers()
    assert len(db.get_containers()) == 1
    time.sleep(0.1)
    rp.clean_containers()
    assert db.get_containers() == []
    assert backend.deleted == [container]


def test_clean_containers_backend_failure_still_removes_record():
    db = Database()
    rp = Reaper(db, FakeBackend(fail=True), 0.02)
    db.save_container(Container())
    time.sleep(0.1)
    rp.clean_containers()
    assert db.get_containers() == []


def test_clean_containers_kubernetes_adds_grace():
    backend = FakeBackend()
    rp = Reaper(Database(), backend, timedelta(milliseconds=20))
    rp.clean_containers_kubernetes()
    assert backend.older_than == [timedelta(minutes=15, milliseconds=20)]


def test_clean_execs():
    db = Database()
    rp = Reaper(db, None, timedelta(minutes=1))
    rp.exec_reap_max = timedelta(milliseconds=20)
    db.save_exec(Exec())
    rp.clean_execs()
    assert len(db.get_execs()) == 1
    time.sleep(0.1)
    rp.clean_execs()
    assert db.get_execs() == []


def test_clean_execs_default_keeps_recent():
    db = Database()
    rp = Reaper(db, None, timedelta(minutes=1))
    db.save_exec(Exec())
    rp.clean_execs()
    assert len(db.get_execs()) == 1


def test_clean_swallows_errors_and_runs_all_cleaners():
    db = Database()
    rp = Reaper(db, FakeBackend(fail=True), timedelta(milliseconds=1))
    rp.exec_reap_max = timedelta(milliseconds=1)
    exc = Exec()
    db.save_exec(exc)
    exc.created = datetime.now(timezone.utc) - timedelta(hours=1)
    rp.clean()
    assert db.get_execs() == []


def test_start_and_stop():
    db = Database()
    rp = Reaper(db, FakeBackend(), timedelta(milliseconds=1))
    rp.interval = 0.01
    container = Container()
    db.save_container(container)
    container.created = datetime.now(timezone.utc) - timedelta(hours=1)
    rp.start()
    deadline = time.monotonic() + 2
    while db.get_containers() and time.monotonic() < deadline:
        time.sleep(0.01)
    rp.stop()
    assert db.get_containers() == []

    later = Container()
    db.save_container(later)
    later.created = datetime.now(timezone.utc) - timedelta(hours=1)
    time.sleep(0.1)
    assert db.get_containers() == [later]