import threading
import time

from settler.locks import ReadWriteLock


def test_readers_share_the_lock():
    lock = ReadWriteLock()
    inside = []
    both_in = threading.Event()

    def reader():
        with lock.read_locked():
            inside.append(1)
            if len(inside) == 2:
                both_in.set()
            both_in.wait(timeout=2)

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert both_in.is_set()


def test_writer_excludes_readers():
    lock = ReadWriteLock()
    events = []
    lock.acquire_write()

    def reader():
        with lock.read_locked():
            events.append("read")

    t = threading.Thread(target=reader)
    t.start()
    time.sleep(0.05)
    events.append("write-done")
    lock.release_write()
    t.join()
    assert events == ["write-done", "read"]
