"""Tests for login event notification and the audit trail."""

import json
import logging

import pytest

from clientlogin.audit import audit_listener
from clientlogin.events import ClientLoginEvent, ClientLoginEvents, EventNotifier
from clientlogin.storage import StoredProfile


PROFILE = StoredProfile(id="p-1", provider="GitHub", identifier="4242")


class TestEventNotifier:
    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self):
        notifier = EventNotifier()
        received = []

        async def async_listener(event):
            received.append(("async", event.type))

        notifier.add_listener(ClientLoginEvents.LOGIN, lambda event: received.append(("sync", event.type)))
        notifier.add_listener(ClientLoginEvents.LOGIN, async_listener)

        delivered = await notifier.dispatch(ClientLoginEvents.LOGIN, PROFILE)

        assert delivered == 2
        assert received == [("sync", ClientLoginEvents.LOGIN), ("async", ClientLoginEvents.LOGIN)]

    @pytest.mark.asyncio
    async def test_no_listeners(self):
        assert await EventNotifier().dispatch(ClientLoginEvents.LOGOUT, PROFILE) == 0

    @pytest.mark.asyncio
    async def test_failing_listener_is_skipped(self, caplog):
        notifier = EventNotifier()
        received = []

        def broken(event):
            raise RuntimeError("listener exploded")

        notifier.add_listener(ClientLoginEvents.LOGIN, broken)
        notifier.add_listener(ClientLoginEvents.LOGIN, received.append)

        with caplog.at_level(logging.CRITICAL, logger="clientlogin.events"):
            delivered = await notifier.dispatch(ClientLoginEvents.LOGIN, PROFILE)

        assert delivered == 1
        assert len(received) == 1
        assert "listener exploded" in caplog.text

    @pytest.mark.asyncio
    async def test_remove_listener(self):
        notifier = EventNotifier()
        received = []
        notifier.add_listener("clientlogin.Logout", received.append)
        notifier.remove_listener(ClientLoginEvents.LOGOUT, received.append)

        assert notifier.has_listeners(ClientLoginEvents.LOGOUT) is False
        assert await notifier.dispatch(ClientLoginEvents.LOGOUT, PROFILE) == 0

    def test_event_carries_profile_table(self):
        event = ClientLoginEvent(type=ClientLoginEvents.LOGIN, profile=PROFILE)

        assert event.table_name == "clientlogin_profiles"
        assert ClientLoginEvents.LOGIN.value == "clientlogin.Login"


class TestAuditListener:
    def test_login_is_recorded(self, caplog):
        with caplog.at_level(logging.INFO, logger="audit"):
            audit_listener(ClientLoginEvent(type=ClientLoginEvents.LOGIN, profile=PROFILE))

        record = json.loads(caplog.records[-1].getMessage())
        assert record["event_type"] == "auth.login"
        assert record["actor"] == "p-1"
        assert record["resource"] == "GitHub"
        assert record["details"] == {"identifier": "4242"}
