"""
Unit tests for the scripted seller.

WHAT: Accept, counter, reject and prompt replies for auto_bargain products
WHY: The scripted seller must obey the same rules as a human seller
HOW: Real session service over SQLite; inspect the returned events and stored session
"""

import pytest

from bargain.models.events import MESSAGE_RECEIVED, STATUS_UPDATED
from bargain.services.scripted_seller import ScriptedSeller
from bargain.services.session_service import SessionService


@pytest.fixture
def service():
    return SessionService()


@pytest.fixture
def scripted(service):
    return ScriptedSeller(service=service)


@pytest.mark.unit
class TestScriptedSeller:
    """Test rule-based replies."""

    def test_accepts_valid_offer(self, service, scripted, buyer, auto_product):
        view, _ = service.create_session(buyer, auto_product, initial_offer=195.0)

        events = scripted.respond(view.id, view.messages[-1])

        assert [e.event for e in events] == [MESSAGE_RECEIVED, STATUS_UPDATED]
        assert events[0].data["sender"] == "seller"
        assert events[1].data["status"] == "accepted"
        after = service.get_session(view.id, buyer)
        assert after.status == "accepted"
        assert after.current_price == 195.0

    def test_counters_low_amount_in_text(self, service, scripted, buyer, auto_product):
        view, _ = service.create_session(buyer, auto_product)
        trigger = service.append_message(view.id, buyer, "Would you take $150?")

        events = scripted.respond(view.id, trigger)

        assert [e.event for e in events] == [MESSAGE_RECEIVED]
        reply = events[0].data
        assert reply["is_offer"] is True
        # 150 + (200 - 150) * 0.6 = 180, clamped up to the 190 floor
        assert reply["offer_amount"] == 190.0
        after = service.get_session(view.id, buyer)
        assert after.status == "active"
        assert after.current_price == 190.0

    def test_rejects_on_last_turn(self, service, scripted, buyer, seller, auto_product):
        view, _ = service.create_session(buyer, auto_product)
        service.append_message(view.id, seller, "Welcome!")
        trigger = service.append_message(view.id, buyer, "I'll give you 100 dollars")

        events = scripted.respond(view.id, trigger)

        assert [e.event for e in events] == [MESSAGE_RECEIVED, STATUS_UPDATED]
        assert events[1].data["status"] == "rejected"
        assert service.get_session(view.id, buyer).status == "rejected"

    def test_prompts_for_offer(self, service, scripted, buyer, auto_product):
        view, _ = service.create_session(buyer, auto_product)

        events = scripted.respond(view.id, view.messages[-1])

        assert len(events) == 1
        assert events[0].data["is_offer"] is False
        assert "offer" in events[0].data["text"]
        assert service.get_session(view.id, buyer).seller_turns == 1

    def test_ignores_regular_products(self, service, scripted, buyer, product):
        view, _ = service.create_session(buyer, product, initial_offer=96.0)
        assert scripted.respond(view.id, view.messages[-1]) == []
        assert service.get_session(view.id, buyer).seller_turns == 0

    def test_ignores_seller_messages(self, service, scripted, buyer, seller, auto_product):
        view, _ = service.create_session(buyer, auto_product)
        trigger = service.append_message(view.id, seller, "Hi")
        assert scripted.respond(view.id, trigger) == []

    def test_silent_when_out_of_turns(self, service, scripted, buyer, seller, auto_product):
        view, _ = service.create_session(buyer, auto_product)
        service.append_message(view.id, seller, "one")
        service.append_message(view.id, seller, "two")
        trigger = service.append_message(view.id, buyer, "$150?")
        assert scripted.respond(view.id, trigger) == []

    def test_silent_when_closed(self, service, scripted, buyer, seller, auto_product):
        view, _ = service.create_session(buyer, auto_product)
        service.update_status(view.id, seller, "rejected")
        assert scripted.respond(view.id, view.messages[-1]) == []
