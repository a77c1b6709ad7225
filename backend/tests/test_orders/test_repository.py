"""
Test suite for the order and reservation number sequences.
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.services.orders.repository import OrderRepository, OrderRepositoryError
from marketplace.services.reservations.repository import (
    ReservationRepository,
    ReservationRepositoryError,
)


@pytest.fixture
def mock_session() -> AsyncMock:
    session = AsyncMock(spec=AsyncSession)
    session.scalar = AsyncMock(return_value=17)
    return session


def _compiled_sql(mock_session: AsyncMock) -> str:
    statement = mock_session.scalar.await_args.args[0]
    return str(statement.compile(dialect=postgresql.dialect()))


class TestNumberSequences:
    """Test drawing order and reservation number suffixes."""

    async def test_order_sequence_uses_nextval(self, mock_session):
        """
        Verifies:
        - The suffix comes from the database sequence, not a row count
        """
        # Act
        value = await OrderRepository(mock_session).next_order_sequence()

        # Assert
        assert value == 17
        sql = _compiled_sql(mock_session)
        assert "nextval('order_number_seq')" in sql
        assert "count(" not in sql

    async def test_reservation_sequence_uses_nextval(self, mock_session):
        value = await ReservationRepository(mock_session).next_reservation_sequence()

        assert value == 17
        assert "nextval('reservation_number_seq')" in _compiled_sql(mock_session)

    @pytest.mark.parametrize(
        "repository_cls,method,error_cls",
        [
            (OrderRepository, "next_order_sequence", OrderRepositoryError),
            (ReservationRepository, "next_reservation_sequence", ReservationRepositoryError),
        ],
    )
    async def test_sequence_failure_wrapped(self, mock_session, repository_cls, method, error_cls):
        mock_session.scalar.side_effect = SQLAlchemyError("relation does not exist")

        with pytest.raises(error_cls):
            await getattr(repository_cls(mock_session), method)()
