"""
Cart/order sink boundary.

WHAT: One-way hand-off of an accepted bargain's final price
WHY: Checkout must charge the negotiated price, never the listing price
HOW: `OrderSink` protocol; the SQL implementation writes one cart line per session
"""

from typing import Protocol

from sqlalchemy import select

from ..core.database import get_db
from ..core.models import CartLine
from ..models.api_schemas import CartLineView
from ..utils.logger import get_logger

logger = get_logger(__name__)


class OrderSink(Protocol):
    def commit_final_price(
        self, buyer_id: str, product_id: str, session_id: str, final_price: float
    ) -> CartLineView:
        ...


class SqlCartSink:
    """Writes accepted bargains into cart_lines, once per session."""

    def commit_final_price(
        self, buyer_id: str, product_id: str, session_id: str, final_price: float
    ) -> CartLineView:
        with get_db() as db:
            line = db.execute(
                select(CartLine).where(CartLine.bargain_session_id == session_id)
            ).scalar_one_or_none()

            if line is None:
                line = CartLine(
                    buyer_id=buyer_id,
                    product_id=product_id,
                    bargain_session_id=session_id,
                    quantity=1,
                    bargained_price=final_price,
                )
                db.add(line)
                db.flush()
                logger.info(f"Cart line added for session {session_id} at ${final_price:.2f}")
            else:
                logger.info(f"Cart line for session {session_id} already committed")

            return CartLineView.model_validate(line)
