"""Inbound webhook deliveries end to end: deploy, deliver, observe replies."""

import pytest
from fastapi.testclient import TestClient

from flowbot.main import create_app
from tests.flow_test_utils import (
    action,
    edge,
    flow,
    logic,
    telegram_update,
    trigger,
    welcome_flow,
)

FALLBACK = "I didn't understand that. Try typing /start to begin."


def _deploy(api_client, bot_id="bot-1", token="token-1", flow_data=None):
    response = api_client.post(
        "/",
        json={
            "action": "deploy",
            "botId": bot_id,
            "botToken": token,
            "flowData": flow_data if flow_data is not None else welcome_flow(),
        },
    )
    assert response.status_code == 200
    return response


@pytest.mark.unit
def test_start_command_gets_welcome(api_client, client_factory):
    _deploy(api_client)

    response = api_client.post("/webhook/bot-1", json=telegram_update("/start"))

    assert response.status_code == 200
    assert response.content == b""
    assert client_factory.clients["token-1"].sent == [
        {"chat_id": 42, "text": "Welcome!", "reply_markup": None}
    ]


@pytest.mark.unit
def test_unmatched_text_gets_single_fallback(api_client, client_factory):
    _deploy(api_client)

    api_client.post("/webhook/bot-1", json=telegram_update("hello"))

    assert client_factory.clients["token-1"].texts == [FALLBACK]


@pytest.mark.unit
def test_unknown_bot_is_404(api_client):
    response = api_client.post("/webhook/ghost", json=telegram_update("/start"))

    assert response.status_code == 404
    assert response.text == "Bot not found"


@pytest.mark.unit
def test_webhook_get_is_405(api_client):
    _deploy(api_client)

    assert api_client.get("/webhook/bot-1").status_code == 405


@pytest.mark.unit
def test_stopped_bot_is_404(api_client):
    _deploy(api_client)
    api_client.post("/", json={"action": "stop", "botId": "bot-1"})

    assert api_client.post("/webhook/bot-1", json=telegram_update("/start")).status_code == 404


@pytest.mark.unit
def test_update_without_message_is_acknowledged(api_client, client_factory):
    _deploy(api_client)

    response = api_client.post(
        "/webhook/bot-1", json={"update_id": 5, "edited_message": {"message_id": 1}}
    )

    assert response.status_code == 200
    assert client_factory.clients["token-1"].sent == []


@pytest.mark.unit
def test_message_without_text_gets_fallback(api_client, client_factory):
    _deploy(api_client)

    api_client.post("/webhook/bot-1", json=telegram_update(None))

    assert client_factory.clients["token-1"].texts == [FALLBACK]


@pytest.mark.unit
def test_malformed_update_is_400(api_client):
    _deploy(api_client)

    response = api_client.post(
        "/webhook/bot-1", content=b"{oops", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400


@pytest.mark.unit
def test_two_bots_reply_with_their_own_flows(api_client, client_factory):
    _deploy(
        api_client,
        "bot-a",
        "token-a",
        flow([trigger("t", command="/start"), action("a", "Bot A here")], [edge("t", "a")]),
    )
    _deploy(
        api_client,
        "bot-b",
        "token-b",
        flow([trigger("t", command="/start"), action("b", "Bot B here")], [edge("t", "b")]),
    )

    api_client.post("/webhook/bot-a", json=telegram_update("/start", chat_id=1))
    api_client.post("/webhook/bot-b", json=telegram_update("/start", chat_id=2))

    assert client_factory.clients["token-a"].sent == [
        {"chat_id": 1, "text": "Bot A here", "reply_markup": None}
    ]
    assert client_factory.clients["token-b"].sent == [
        {"chat_id": 2, "text": "Bot B here", "reply_markup": None}
    ]


@pytest.mark.unit
def test_redeploy_changes_replies(api_client, client_factory):
    _deploy(api_client)
    _deploy(
        api_client,
        flow_data=flow(
            [trigger("t1", command="/start"), action("a1", "New welcome")], [edge("t1", "a1")]
        ),
    )

    api_client.post("/webhook/bot-1", json=telegram_update("/start"))

    assert client_factory.clients["token-1"].texts == ["New welcome"]


@pytest.mark.unit
def test_send_failure_still_acknowledged_with_apology(api_client, client_factory):
    client_factory.fail_texts.add("Welcome!")
    _deploy(api_client)

    response = api_client.post("/webhook/bot-1", json=telegram_update("/start"))

    assert response.status_code == 200
    assert client_factory.clients["token-1"].texts == [
        "Sorry, something went wrong. Please try again."
    ]


@pytest.mark.unit
def test_branching_flow_over_webhook(api_client, client_factory):
    data = flow(
        [
            trigger("t", keyword="order"),
            logic("check", condition="text contains refund"),
            action("refund", "Refunds take 5 days"),
            action("status", "Your order is on its way"),
        ],
        [edge("t", "check"), edge("check", "refund", "true"), edge("check", "status", "false")],
    )
    _deploy(api_client, flow_data=data)

    api_client.post("/webhook/bot-1", json=telegram_update("refund my order"))
    api_client.post("/webhook/bot-1", json=telegram_update("where is my order", update_id=2))

    assert client_factory.clients["token-1"].texts == [
        "Refunds take 5 days",
        "Your order is on its way",
    ]


@pytest.mark.unit
def test_secret_token_is_enforced(settings, client_factory):
    secured = settings.model_copy(update={"webhook_secret_token": "s3cret"})
    with TestClient(create_app(secured, client_factory=client_factory)) as api_client:
        _deploy(api_client)

        rejected = api_client.post("/webhook/bot-1", json=telegram_update("/start"))
        accepted = api_client.post(
            "/webhook/bot-1",
            json=telegram_update("/start"),
            headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
        )

    assert rejected.status_code == 403
    assert accepted.status_code == 200
    assert client_factory.clients["token-1"].webhooks[0][1] == "s3cret"
    assert client_factory.clients["token-1"].texts == ["Welcome!"]


@pytest.mark.unit
def test_restore_on_startup_redeploys_active_records(settings, client_factory, deployment_store):
    from flowbot.services.deployment_store import DeploymentRecord

    deployment_store.record_deployment(
        DeploymentRecord(
            bot_id="bot-r",
            user_id="owner",
            credential="token-r",
            flow_data=welcome_flow(),
            webhook_url="https://runtime.test/webhook/bot-r",
        )
    )
    restoring = settings.model_copy(update={"restore_deployments": True})
    app = create_app(restoring, client_factory=client_factory, deployment_store=deployment_store)

    with TestClient(app) as api_client:
        api_client.post("/webhook/bot-r", json=telegram_update("/start"))

    assert client_factory.clients["token-r"].texts == ["Welcome!"]


@pytest.mark.unit
def test_database_url_from_given_settings_is_used(settings, client_factory, tmp_path, monkeypatch):
    from cryptography.fernet import Fernet
    from sqlalchemy import select

    from flowbot.db.models import BotLog
    from flowbot.db.session import build_engine, make_session_factory
    from flowbot.db.types import CREDENTIAL_KEY_ENV

    monkeypatch.setenv(CREDENTIAL_KEY_ENV, Fernet.generate_key().decode())
    url = f"sqlite:///{tmp_path / 'runtime.db'}"
    persistent = settings.model_copy(update={"database_url": url})
    app = create_app(persistent, client_factory=client_factory)

    with TestClient(app) as api_client:
        _deploy(api_client)
        api_client.post("/webhook/bot-1", json=telegram_update("/start"))
        record = app.state.ctx.deployment_store.get_active("bot-1")

    assert record is not None
    assert record.credential == "token-1"
    with make_session_factory(build_engine(url))() as session:
        logs = session.execute(select(BotLog)).scalars().all()
    assert [log.interaction_type for log in logs] == ["message_received"]
