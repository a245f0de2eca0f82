import threading
import time

from locks import ReadWriteLock


def test_readers_share_the_lock():
    lock = ReadWriteLock()
    inside = []
    barrier = threading.Barrier(3)

    def reader():
        with lock.read():
            inside.append(1)
            barrier.wait(timeout=2)

    threads = [threading.Thread(target=reader) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=2)
    assert len(inside) == 3


def test_writer_waits_for_readers():
    lock = ReadWriteLock()
    acquired = threading.Event()

    def writer():
        with lock.write():
            acquired.set()

    lock.acquire_read()
    thread = threading.Thread(target=writer)
    thread.start()
    time.sleep(0.05)
    assert not acquired.is_set()

    lock.release_read()
    thread.join(timeout=2)
    assert acquired.is_set()


def test_waiting_writer_blocks_new_readers():
    lock = ReadWriteLock()
    order = []

    lock.acquire_read()
    writer = threading.Thread(target=lambda: (lock.acquire_write(), order.append("writer"), lock.release_write()))
    writer.start()
    time.sleep(0.05)

    reader = threading.Thread(target=lambda: (lock.acquire_read(), order.append("reader"), lock.release_read()))
    reader.start()
    time.sleep(0.05)
    assert order == []

    lock.release_read()
    writer.join(timeout=2)
    reader.join(timeout=2)
    assert order == ["writer", "reader"]
