import threading

from backend.client.scheduler import (
    COALESCED,
    FAILED,
    FETCHING,
    FLUSHING,
    FRESH,
    IDLE,
    REFRESH_INTERVAL_MS,
    REFRESHED,
    RefreshDomain,
    RefreshScheduler,
)


def _domain(name, log, stale=True, fetch=None):
    return RefreshDomain(
        name,
        flush=lambda: log.append(("flush", name)),
        fetch=fetch or (lambda: log.append(("fetch", name))),
        is_stale=lambda: stale,
    )


def test_interval_is_five_minutes():
    assert RefreshScheduler().interval_ms == REFRESH_INTERVAL_MS == 300_000


def test_refresh_flushes_then_fetches():
    log = []
    s = RefreshScheduler()
    s.register(_domain("products", log))
    assert s.refresh("products") == REFRESHED
    assert log == [("flush", "products"), ("fetch", "products")]
    assert s.state("products") == IDLE


def test_states_during_cycle():
    s = RefreshScheduler()
    seen = []
    s.register(
        RefreshDomain(
            "products",
            flush=lambda: seen.append(s.state("products")),
            fetch=lambda: seen.append(s.state("products")),
        )
    )
    s.refresh("products")
    assert seen == [FLUSHING, FETCHING]
    assert s.state("products") == IDLE


def test_overlapping_trigger_is_coalesced():
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow_fetch():
        calls.append(1)
        started.set()
        release.wait(5)

    s = RefreshScheduler()
    s.register(RefreshDomain("receipts", flush=lambda: None, fetch=slow_fetch))

    results = []
    t = threading.Thread(target=lambda: results.append(s.refresh("receipts")))
    t.start()
    assert started.wait(5)

    assert s.refresh("receipts") == COALESCED
    assert s.refresh_if_stale("receipts") == COALESCED

    release.set()
    t.join(5)
    assert results == [REFRESHED]
    assert len(calls) == 1
    assert s.refresh("receipts") == REFRESHED


def test_domains_do_not_block_each_other():
    started = threading.Event()
    release = threading.Event()
    log = []

    def slow_fetch():
        started.set()
        release.wait(5)

    s = RefreshScheduler()
    s.register(RefreshDomain("receipts", flush=lambda: None, fetch=slow_fetch))
    s.register(_domain("products", log))

    t = threading.Thread(target=lambda: s.refresh("receipts"))
    t.start()
    assert started.wait(5)
    assert s.refresh("products") == REFRESHED
    release.set()
    t.join(5)


def test_failed_cycle_is_logged_not_raised(capsys):
    def broken():
        raise RuntimeError("sheet down")

    s = RefreshScheduler()
    s.register(RefreshDomain("products", flush=lambda: None, fetch=broken))
    assert s.refresh("products") == FAILED
    assert s.state("products") == IDLE
    assert "refresh.cycle_failed" in capsys.readouterr().err


def test_refresh_if_stale_skips_fresh_domains_and_never_flushes():
    log = []
    s = RefreshScheduler()
    s.register(_domain("products", log, stale=False))
    s.register(_domain("customers", log, stale=True))
    assert s.refresh_if_stale("products") == FRESH
    assert s.refresh_if_stale("customers") == REFRESHED
    assert log == [("fetch", "customers")]


def test_tick_refreshes_every_domain():
    log = []
    s = RefreshScheduler()
    s.register(_domain("products", log))
    s.register(_domain("customers", log))
    assert s.tick() == {"products": REFRESHED, "customers": REFRESHED}
    assert log == [
        ("flush", "products"),
        ("fetch", "products"),
        ("flush", "customers"),
        ("fetch", "customers"),
    ]


def test_timer_thread_runs_and_stops():
    fired = threading.Event()
    s = RefreshScheduler(interval_ms=10)
    s.register(RefreshDomain("products", flush=lambda: None, fetch=fired.set))
    s.start()
    try:
        assert s.running
        assert fired.wait(5)
    finally:
        s.stop(timeout=5)
    assert not s.running
