import json

import pytest
from sqlmodel import Session, create_engine
from sqlalchemy.pool import StaticPool
from starlette.responses import Response

from app.storage import (
    BackendChain,
    CookieBackend,
    CookieJar,
    KeyValueBackend,
    MemoryBackend,
    StorageBackend,
    StorageUnavailableError,
)
from app.storage.errors import CorruptionError

KEY = "netflix-watch-history"


class BrokenBackend(StorageBackend):
    """Backend whose substrate refuses every call."""

    @property
    def name(self) -> str:
        return "broken"

    def read(self, key):
        raise StorageUnavailableError("storage disabled")

    def write(self, key, value):
        raise StorageUnavailableError("quota exceeded")

    def delete(self, key):
        raise StorageUnavailableError("storage disabled")


def decode_list(text):
    payload = json.loads(text) if text != "corrupt" else None
    if not isinstance(payload, list):
        raise CorruptionError("not a list")
    return payload


# --- MemoryBackend ---


def test_memory_backend_reads_absent_key_as_none():
    backend = MemoryBackend()

    assert backend.read(KEY) is None
    backend.delete(KEY)  # deleting a missing key is fine


def test_memory_backend_write_read_delete():
    backend = MemoryBackend()

    backend.write(KEY, "[1]")
    assert backend.read(KEY) == "[1]"

    backend.write(KEY, "[2]")
    assert backend.read(KEY) == "[2]"

    backend.delete(KEY)
    assert backend.read(KEY) is None


def test_memory_backend_quota_keeps_previous_value():
    backend = MemoryBackend(max_bytes=len(KEY) + 10)
    backend.write(KEY, "[1]")

    with pytest.raises(StorageUnavailableError):
        backend.write(KEY, "[" + "1," * 20 + "1]")

    assert backend.read(KEY) == "[1]"


# --- KeyValueBackend ---


def test_key_value_backend_absent_key(session):
    backend = KeyValueBackend(session, "bingearr")

    assert backend.read(KEY) is None


def test_key_value_backend_write_overwrite_delete(session):
    backend = KeyValueBackend(session, "bingearr")

    backend.write(KEY, "[1]")
    backend.write(KEY, "[1,2]")
    assert backend.read(KEY) == "[1,2]"

    backend.delete(KEY)
    assert backend.read(KEY) is None
    backend.delete(KEY)


def test_key_value_backend_namespaces_are_isolated(session):
    mine = KeyValueBackend(session, "mine")
    theirs = KeyValueBackend(session, "theirs")

    mine.write(KEY, "[1]")

    assert theirs.read(KEY) is None
    assert mine.read(KEY) == "[1]"


def test_key_value_backend_persists_across_sessions(engine):
    with Session(engine) as session:
        KeyValueBackend(session, "bingearr").write(KEY, "[1]")

    with Session(engine) as session:
        assert KeyValueBackend(session, "bingearr").read(KEY) == "[1]"


def test_key_value_backend_without_table_is_unavailable():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    with Session(engine) as session:
        backend = KeyValueBackend(session, "bingearr")

        with pytest.raises(StorageUnavailableError):
            backend.read(KEY)
        with pytest.raises(StorageUnavailableError):
            backend.write(KEY, "[]")


# --- CookieBackend ---


def test_cookie_backend_round_trips_json():
    backend = CookieBackend(CookieJar())
    value = json.dumps([{"id": 1, "title": "Amélie; \"Le Fabuleux\", 2001"}])

    backend.write(KEY, value)

    assert backend.read(KEY) == value
    raw = backend.jar.get(KEY)
    for unsafe in (";", ",", '"', " ", "{"):
        assert unsafe not in raw


def test_cookie_backend_reads_request_cookies():
    jar = CookieJar({KEY: "%5B1%5D"})

    assert CookieBackend(jar).read(KEY) == "[1]"
    assert CookieBackend(CookieJar({KEY: ""})).read(KEY) is None
    assert CookieBackend(CookieJar()).read(KEY) is None


def test_cookie_backend_sets_one_year_root_cookie():
    response = Response()
    backend = CookieBackend(CookieJar(response=response))

    backend.write(KEY, "[]")

    [header] = response.headers.getlist("set-cookie")
    assert header.startswith(f"{KEY}=%5B%5D")
    assert "Max-Age=31536000" in header
    assert "Path=/" in header


def test_cookie_backend_delete_expires_cookie():
    response = Response()
    jar = CookieJar({KEY: "%5B%5D"}, response)

    CookieBackend(jar).delete(KEY)

    assert jar.get(KEY) is None
    [header] = response.headers.getlist("set-cookie")
    assert "Max-Age=0" in header


def test_cookie_backend_oversize_write_keeps_existing_cookie():
    jar = CookieJar({KEY: "%5B1%5D"})
    backend = CookieBackend(jar, max_bytes=64)

    with pytest.raises(StorageUnavailableError):
        backend.write(KEY, json.dumps(["x" * 100]))

    assert backend.read(KEY) == "[1]"


# --- BackendChain ---


def test_chain_prefers_first_backend():
    cookie, key_value = MemoryBackend(), MemoryBackend()
    cookie.write(KEY, "[1]")
    key_value.write(KEY, "[2]")

    assert BackendChain([cookie, key_value]).load(KEY, decode_list) == [1]


def test_chain_falls_back_when_first_is_absent():
    cookie, key_value = MemoryBackend(), MemoryBackend()
    key_value.write(KEY, "[2]")

    assert BackendChain([cookie, key_value]).load(KEY, decode_list) == [2]


def test_chain_falls_back_when_first_is_corrupt():
    cookie, key_value = MemoryBackend(), MemoryBackend()
    cookie.write(KEY, "corrupt")
    key_value.write(KEY, "[2]")

    assert BackendChain([cookie, key_value]).load(KEY, decode_list) == [2]


def test_chain_falls_back_when_first_is_unreadable():
    key_value = MemoryBackend()
    key_value.write(KEY, "[2]")

    assert BackendChain([BrokenBackend(), key_value]).load(KEY, decode_list) == [2]


def test_chain_reads_empty_when_everything_fails():
    cookie, key_value = MemoryBackend(), MemoryBackend()
    cookie.write(KEY, "corrupt")
    key_value.write(KEY, "corrupt")

    assert BackendChain([cookie, key_value]).load(KEY, decode_list) == []
    assert BackendChain([]).load(KEY, decode_list) == []


def test_chain_save_is_best_effort_per_backend(caplog):
    key_value = MemoryBackend()
    chain = BackendChain([BrokenBackend(), key_value])

    assert chain.save(KEY, "[1]") is True
    assert key_value.read(KEY) == "[1]"
    assert "quota exceeded" in caplog.text


def test_chain_save_fails_when_no_backend_accepts():
    assert BackendChain([BrokenBackend()]).save(KEY, "[1]") is False
    assert BackendChain([]).save(KEY, "[1]") is False


def test_chain_refused_write_leaves_every_backend_untouched():
    cookies = CookieBackend(CookieJar({KEY: "%5B1%5D"}), max_bytes=64)
    key_value = MemoryBackend(max_bytes=len(KEY) + 10)
    key_value.write(KEY, "[1]")
    chain = BackendChain([cookies, key_value])

    assert chain.save(KEY, json.dumps(["x" * 100])) is False

    assert cookies.read(KEY) == "[1]"
    assert key_value.read(KEY) == "[1]"


def test_chain_drops_stale_copy_from_refusing_backend():
    cookies = CookieBackend(CookieJar({KEY: "%5B1%5D"}), max_bytes=64)
    key_value = MemoryBackend()
    chain = BackendChain([cookies, key_value])

    assert chain.save(KEY, json.dumps(["x" * 100])) is True

    assert cookies.read(KEY) is None
    assert chain.load(KEY, decode_list) == ["x" * 100]


def test_chain_erase_removes_from_every_backend():
    cookie, key_value = MemoryBackend(), MemoryBackend()
    chain = BackendChain([cookie, key_value])
    chain.save(KEY, "[1]")

    assert chain.erase(KEY) is True
    assert cookie.read(KEY) is None
    assert key_value.read(KEY) is None
    assert BackendChain([BrokenBackend()]).erase(KEY) is False


def test_chain_availability():
    assert BackendChain([MemoryBackend()]).available
    assert not BackendChain([]).available
