import structlog

from movehub.logging import bind_actor

from conftest import auth


def test_bind_actor_sets_log_context():
    structlog.contextvars.clear_contextvars()
    try:
        bind_actor(7, "company_admin", 3)
        context = structlog.contextvars.get_contextvars()
        assert context["actor_id"] == 7
        assert context["actor_role"] == "company_admin"
        assert context["actor_company_id"] == 3
    finally:
        structlog.contextvars.clear_contextvars()


def test_request_id_is_echoed(client, world):
    resp = client.get("/auth/me", headers={**auth(world.client), "X-Request-ID": "req-42"})
    assert resp.headers["X-Request-ID"] == "req-42"
