"""Tests for ticket webhook forwarding."""

import pytest
from aiohttp import test_utils, web

from smartcare.pipeline.tickets import Ticket, TicketRef
from smartcare.pipeline.webhook import TicketWebhook


def make_ref():
    ticket = Ticket(
        ticket_id="ticket-9",
        ticket_number="TKT-123456000000000009",
        resident_name="Sara Ali",
        problem_description="AC is broken",
        preferred_service_time="2024-06-01T09:00:00Z",
        unit_number="52",
        transcript="User: my AC is broken\n",
    )
    return TicketRef(ticket_id="ticket-9", ticket_number=ticket.ticket_number, ticket=ticket)


def receiver(received, status=200):
    async def handle(request):
        received.append(await request.json())
        return web.json_response({"ok": status < 300}, status=status)

    app = web.Application()
    app.router.add_post("/hook", handle)
    return test_utils.TestServer(app)


class TestTicketWebhook:

    @pytest.mark.asyncio
    async def test_posts_ticket_with_ids(self):
        received = []
        async with receiver(received) as server:
            webhook = TicketWebhook(str(server.make_url("/hook")))
            try:
                assert await webhook.send(make_ref()) is True
            finally:
                await webhook.close()

        body = received[0]
        assert body["ticketId"] == "ticket-9"
        assert body["ticketNumber"] == "TKT-123456000000000009"
        assert body["unitNumber"] == "52"
        assert body["residentName"] == "Sara Ali"
        assert "transcript" not in body

    @pytest.mark.asyncio
    async def test_rejected_post_returns_false(self):
        received = []
        async with receiver(received, status=500) as server:
            webhook = TicketWebhook(str(server.make_url("/hook")))
            try:
                assert await webhook.send(make_ref()) is False
            finally:
                await webhook.close()
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_unreachable_receiver_returns_false(self):
        webhook = TicketWebhook("http://127.0.0.1:1/hook", timeout_seconds=2)
        try:
            assert await webhook.send(make_ref()) is False
        finally:
            await webhook.close()

    @pytest.mark.asyncio
    async def test_disabled_without_url(self):
        webhook = TicketWebhook()
        assert webhook.enabled is False
        assert await webhook.send(make_ref()) is False

    @pytest.mark.asyncio
    async def test_placeholder_ref_not_sent(self):
        webhook = TicketWebhook("http://127.0.0.1:1/hook")
        assert await webhook.send(TicketRef.unavailable()) is False

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        webhook = TicketWebhook("http://127.0.0.1:1/hook")
        await webhook.close()
        await webhook.send(make_ref())
        await webhook.close()
        await webhook.close()
        assert webhook._session is None
