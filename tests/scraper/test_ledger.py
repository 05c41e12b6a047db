"""Tests for the reservation ledger."""

import threading

import pytest

from zameen_finder.scraper.ledger import ReservationLedger, overallocation_margin


class TestBudget:

    @pytest.mark.parametrize("wanted,margin", [(1, 0), (2, 0), (5, 1), (100, 20), (250, 50), (10_000, 50)])
    def test_margin(self, wanted, margin):
        assert overallocation_margin(wanted) == margin

    def test_margin_only_with_details(self):
        assert ReservationLedger(100, scrape_details=True).max_reservations == 120
        assert ReservationLedger(100, scrape_details=False).max_reservations == 100

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            ReservationLedger(0)


class TestReservations:

    def test_duplicate_key_refused(self):
        ledger = ReservationLedger(10)
        assert ledger.reserve_detail("a")
        assert not ledger.reserve_detail("a")
        assert ledger.reserved == 1
        assert ledger.is_reserved("a")

    def test_budget_exhausted(self):
        ledger = ReservationLedger(2, scrape_details=False)
        assert ledger.reserve_detail("a")
        assert ledger.reserve_detail("b")
        assert not ledger.reserve_detail("c")
        assert ledger.reserved == 2
        assert not ledger.accepting_tasks

    def test_batch_preserves_order_and_truncates(self):
        ledger = ReservationLedger(3, scrape_details=False)
        ledger.reserve_detail("b")
        assert ledger.reserve_batch(["a", "b", "c", "d", "e"]) == ["a", "c"]
        assert ledger.remaining_reservations == 0

    def test_page_signatures(self):
        ledger = ReservationLedger(10)
        assert ledger.reserve_page("idx|f|q|25|1")
        assert not ledger.reserve_page("idx|f|q|25|1")
        assert ledger.reserve_page("idx|f|q|25|2")
        assert ledger.reserved == 0

    def test_concurrent_reservations_never_overshoot(self):
        ledger = ReservationLedger(100)
        accepted = []
        lock = threading.Lock()

        def worker(offset):
            mine = [k for k in (f"key-{offset + i}" for i in range(200)) if ledger.reserve_detail(k)]
            with lock:
                accepted.extend(mine)

        threads = [threading.Thread(target=worker, args=(n * 50,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert ledger.reserved == ledger.max_reservations == 120
        assert len(accepted) == len(set(accepted)) == 120


class TestEmission:

    def test_saved_capped_at_wanted(self):
        ledger = ReservationLedger(2)
        assert ledger.record_emitted("a")
        assert ledger.record_emitted("b")
        assert not ledger.record_emitted("c")
        assert ledger.saved == 2
        assert ledger.goal_reached

    def test_same_key_emitted_once(self):
        ledger = ReservationLedger(5)
        assert ledger.record_emitted("a")
        assert not ledger.record_emitted("a")
        assert ledger.saved == 1

    def test_release(self):
        ledger = ReservationLedger(5)
        ledger.record_emitted("a")
        ledger.release_emitted("a")
        assert ledger.saved == 0
        assert ledger.record_emitted("a")

    def test_snapshot(self):
        ledger = ReservationLedger(10)
        ledger.reserve_detail("a")
        ledger.record_emitted("a")
        snap = ledger.snapshot()
        assert (snap.results_wanted, snap.max_reservations, snap.reserved, snap.saved) == (10, 12, 1, 1)
