try:
    from . import _bootstrap  # noqa: F401
    from ._helpers import FakeClock
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _helpers import FakeClock  # type: ignore

import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from app.core.errors import InvalidOrExpiredStateError, PersistenceError
from app.models.oauth import OAuthStateData, OAuthStateRecord, Platform
from app.services.oauth_states import OAuthStateService


@pytest.fixture()
def service(state_store, clock: FakeClock) -> OAuthStateService:
    return OAuthStateService(state_store, ttl_seconds=600, clock=clock)


def test_issue_then_consume_returns_issued_fields(service: OAuthStateService) -> None:
    token = service.issue("c1", "a1", "meta_ads", "u1")

    data = service.consume(token)

    assert data == OAuthStateData(
        client_id="c1", agency_id="a1", platform=Platform.META_ADS, user_id="u1"
    )


def test_second_consume_is_not_found(service: OAuthStateService) -> None:
    token = service.issue("c1", "a1", Platform.LINKEDIN_ADS, "u1")

    assert service.consume(token) is not None
    assert service.consume(token) is None


def test_unknown_and_empty_tokens_are_not_found(service: OAuthStateService) -> None:
    assert service.consume("never-issued") is None
    assert service.consume("") is None


def test_issue_persists_expiry_window(service, state_store, clock: FakeClock) -> None:
    token = service.issue("c1", "a1", Platform.META_ADS, "u1")

    record = state_store.take(token)

    assert record is not None
    assert record.created_at == clock.now
    assert record.expires_at == clock.now + timedelta(seconds=600)


def test_tokens_are_random_and_url_safe(service: OAuthStateService) -> None:
    tokens = {service.issue("c1", "a1", Platform.META_ADS, "u1") for _ in range(50)}

    assert len(tokens) == 50
    for token in tokens:
        # 32 random bytes encode to 43 url-safe characters.
        assert len(token) >= 43
        assert all(ch.isalnum() or ch in "-_" for ch in token)


def test_expired_token_is_rejected(service: OAuthStateService, clock: FakeClock) -> None:
    token = service.issue("c1", "a1", Platform.META_ADS, "u1")

    clock.advance(601)

    assert service.consume(token) is None


def test_token_is_valid_just_before_expiry(service: OAuthStateService, clock: FakeClock) -> None:
    token = service.issue("c1", "a1", Platform.META_ADS, "u1")

    clock.advance(599)

    assert service.consume(token) is not None


def test_expired_token_stays_rejected_after_time_rewinds(service, clock: FakeClock) -> None:
    token = service.issue("c1", "a1", Platform.META_ADS, "u1")
    clock.advance(700)
    assert service.consume(token) is None

    clock.advance(-700)

    assert service.consume(token) is None


def test_concurrent_consumers_have_single_winner(service: OAuthStateService) -> None:
    token = service.issue("c1", "a1", Platform.META_ADS, "u1")
    workers = 8
    barrier = threading.Barrier(workers)

    def attempt() -> OAuthStateData | None:
        barrier.wait()
        return service.consume(token)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda _: attempt(), range(workers)))

    winners = [result for result in results if result is not None]
    assert len(winners) == 1
    assert winners[0].client_id == "c1"


def test_issue_surfaces_persistence_error(service, database) -> None:
    conn = sqlite3.connect(database.path)
    conn.execute("DROP TABLE oauth_states")
    conn.close()

    with pytest.raises(PersistenceError):
        service.issue("c1", "a1", Platform.META_ADS, "u1")


def test_purge_expired_only_removes_elapsed_records(service, state_store, clock: FakeClock) -> None:
    stale = service.issue("c1", "a1", Platform.META_ADS, "u1")
    clock.advance(300)
    fresh = service.issue("c2", "a1", Platform.META_ADS, "u1")
    clock.advance(400)

    purged = service.purge_expired()

    assert purged == 1
    assert state_store.count() == 1
    assert service.consume(stale) is None
    assert service.consume(fresh) is not None


def test_redeem_rejects_state_for_other_platform(service: OAuthStateService) -> None:
    token = service.issue("c1", "a1", Platform.LINKEDIN_ADS, "u1")

    with pytest.raises(InvalidOrExpiredStateError):
        service.redeem(token, platform=Platform.META_ADS)

    # The mismatched attempt still burns the token.
    assert service.consume(token) is None


def test_redeem_returns_data_for_matching_platform(service: OAuthStateService) -> None:
    token = service.issue("c9", "a9", Platform.GOOGLE_ANALYTICS, "u9")

    data = service.redeem(token, platform=Platform.GOOGLE_ANALYTICS)

    assert (data.client_id, data.agency_id, data.user_id) == ("c9", "a9", "u9")


def test_store_take_removes_row(state_store, clock: FakeClock) -> None:
    state_store.insert(
        OAuthStateRecord(
            state="fixed-token",
            client_id="c1",
            agency_id="a1",
            platform=Platform.META_ADS,
            user_id="u1",
            created_at=clock.now,
            expires_at=clock.now + timedelta(minutes=10),
        )
    )

    assert state_store.count() == 1
    assert state_store.take("fixed-token") is not None
    assert state_store.count() == 0
    assert state_store.take("fixed-token") is None
