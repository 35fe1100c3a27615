"""
Telegram webhook endpoint.
"""

from __future__ import annotations

from tests.fakes import ScriptedRun, text_delta

SECRET_HEADER = {"X-Telegram-Bot-Api-Secret-Token": "hook-secret"}


def _update(update_id, text="hello"):
    return {
        "update_id": update_id,
        "message": {"message_id": 5, "chat": {"id": 900}, "from": {"id": 1}, "text": text},
    }


def test_probe(telegram_client):
    response = telegram_client.get("/api/telegram")
    assert response.status_code == 200
    assert "webhook is up" in response.text


def test_update_processed_in_background(telegram_client, telegram_channel, runtime):
    runtime.queue(ScriptedRun([text_delta("Recover today.")]))

    response = telegram_client.post("/api/telegram", json=_update(1), headers=SECRET_HEADER)

    assert response.status_code == 200
    assert response.text == "Queued"
    telegram_channel._send_message.assert_awaited_once_with(900, "Recover today.", reply_to=5)
    assert runtime.calls[0].session_id == "tg_session_900"


def test_duplicate_update_acknowledged_once(telegram_client, telegram_channel, runtime):
    runtime.queue(ScriptedRun([text_delta("once")]))

    first = telegram_client.post("/api/telegram", json=_update(2), headers=SECRET_HEADER)
    second = telegram_client.post("/api/telegram", json=_update(2), headers=SECRET_HEADER)

    assert first.text == "Queued"
    assert (second.status_code, second.text) == (200, "Duplicate update")
    assert len(runtime.calls) == 1


def test_wrong_secret(telegram_client, runtime):
    response = telegram_client.post("/api/telegram", json=_update(3), headers={"X-Telegram-Bot-Api-Secret-Token": "x"})
    assert response.status_code == 401
    assert runtime.calls == []


def test_bad_json(telegram_client):
    response = telegram_client.post(
        "/api/telegram", content=b"{not json", headers={**SECRET_HEADER, "Content-Type": "application/json"},
    )
    assert response.status_code == 400


def test_no_message(telegram_client):
    response = telegram_client.post("/api/telegram", json={"update_id": 4, "my_chat_member": {}}, headers=SECRET_HEADER)
    assert (response.status_code, response.text) == (200, "No message to process")


def test_webhook_absent_without_bot(client):
    assert client.post("/api/telegram", json=_update(5)).status_code in (404, 405)
