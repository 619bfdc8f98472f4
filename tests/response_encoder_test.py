import gzip
import json
import threading

import pytest

from host_introspector import GzipWriterPool, ResponseEncoder, Snapshot
from host_introspector.response_encoder import GzipWriter


def make_snapshot(greeting: str = "<héllo & welcome>") -> Snapshot:
    return Snapshot(
        start_time="2024-03-01T12:00:00Z",
        request_time="2024-03-01T12:00:01Z",
        hostname="host-1",
        user={"uid": "0", "gid": "0", "username": "root", "name": "root", "homeDir": "/root"},
        group={"gid": "0", "name": "root"},
        system={"os": "Linux", "cpus": 2},
        env={"GREETING": greeting},
    )


def test_encode_compact():
    data = ResponseEncoder().encode(make_snapshot())
    text = data.decode("utf-8")

    assert text.endswith("\n")
    assert "\n" not in text[:-1]
    assert ": " not in text
    assert '"GREETING":"<héllo & welcome>"' in text
    assert json.loads(text)["ecsTaskStats"] is None


def test_encode_indented():
    text = ResponseEncoder().encode(make_snapshot(), indent=2).decode("utf-8")

    assert text.startswith('{\n  "startTime": "2024-03-01T12:00:00Z",\n')
    assert '"GREETING": "<héllo & welcome>"' in text
    assert json.loads(text) == make_snapshot().to_dict()


def test_encode_gzip_matches_plain():
    encoder = ResponseEncoder()
    snapshot = make_snapshot()

    plain = encoder.encode(snapshot)
    compressed = encoder.encode(snapshot, compress=True)

    assert compressed[:2] == b"\x1f\x8b"
    assert gzip.decompress(compressed) == plain


def test_pool_reuses_writers():
    pool = GzipWriterPool()

    with pool.borrow() as writer:
        writer.write(b"first")
        writer.close()

    assert pool.idle_count() == 1

    with pool.borrow() as reused:
        assert reused is writer
        assert pool.idle_count() == 0
        reused.write(b"second")
        reused.close()
        assert gzip.decompress(reused.getvalue()) == b"second"

    assert pool.idle_count() == 1


def test_pool_returns_writer_on_error():
    pool = GzipWriterPool()

    with pytest.raises(RuntimeError):
        with pool.borrow() as writer:
            writer.write(b"partial")
            raise RuntimeError("encoding failed")

    assert pool.idle_count() == 1

    with pool.borrow() as reused:
        assert reused is writer
        reused.write(b"clean")
        reused.close()
        assert gzip.decompress(reused.getvalue()) == b"clean"


def test_pool_max_idle():
    pool = GzipWriterPool(max_idle=1)

    first = pool.take()
    second = pool.take()
    assert first is not second

    pool.give_back(first)
    pool.give_back(second)

    assert pool.idle_count() == 1


def test_writer_rejects_write_after_close():
    writer = GzipWriter()
    writer.write(b"x")
    writer.close()

    with pytest.raises(ValueError):
        writer.write(b"y")

    writer.reset()
    writer.write(b"y")
    writer.close()
    assert gzip.decompress(writer.getvalue()) == b"y"


def test_concurrent_encoding_does_not_mix_output():
    encoder = ResponseEncoder(pool=GzipWriterPool())
    results: dict[int, bytes] = {}
    errors: list[Exception] = []

    def work(i: int):
        try:
            for _ in range(20):
                snapshot = make_snapshot(greeting=f"worker-{i}" * (i + 1))
                data = encoder.encode(snapshot, compress=True)
                assert gzip.decompress(data) == encoder.encode(snapshot)
            results[i] = data
        except Exception as ex:
            errors.append(ex)

    threads = [threading.Thread(target=work, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(results) == 8

    for i, data in results.items():
        doc = json.loads(gzip.decompress(data))
        assert doc["env"]["GREETING"] == f"worker-{i}" * (i + 1)

    assert 1 <= encoder.pool.idle_count() <= 8
