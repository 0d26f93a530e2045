"""Tests for the ingestor data models."""

from __future__ import annotations

from decimal import Decimal

from vybe_alert_engine.ingestor.models import (
    NATIVE_SOL_MINT,
    PnLSummary,
    TokenHolding,
    Transfer,
    TransferPage,
    WalletBalance,
    to_decimal,
)


class TestToDecimal:
    def test_parses_strings_and_numbers(self) -> None:
        assert to_decimal("1.25") == Decimal("1.25")
        assert to_decimal(3) == Decimal(3)
        assert to_decimal(0.5) == Decimal("0.5")

    def test_falls_back_to_default(self) -> None:
        assert to_decimal(None) == Decimal(0)
        assert to_decimal("") == Decimal(0)
        assert to_decimal("not-a-number") == Decimal(0)
        assert to_decimal("NaN", Decimal(7)) == Decimal(7)


class TestWalletBalance:
    def test_from_dict(self) -> None:
        balance = WalletBalance.from_dict(
            {
                "ownerAddress": "owner",
                "totalTokenValueUsd": "300",
                "data": [
                    {"symbol": "A", "mintAddress": "mint-a", "valueUsd": "100"},
                    {"symbol": "B", "mintAddress": "mint-b", "valueUsd": "200"},
                    "garbage",
                ],
            }
        )

        assert balance.total_value_usd == Decimal("300")
        assert balance.symbols == ["A", "B"]
        assert not balance.is_empty
        assert [t.symbol for t in balance.top_holdings(1)] == ["B"]

    def test_empty_response(self) -> None:
        balance = WalletBalance.from_dict({})

        assert balance.is_empty
        assert balance.total_value_usd == Decimal(0)

    def test_value_key(self) -> None:
        holding = TokenHolding.from_dict({"symbol": "A", "mintAddress": "mint-a"})

        assert holding.value_key == "mint-a_value"


class TestTransfer:
    def test_prefers_calculated_amount(self) -> None:
        transfer = Transfer.from_dict(
            {
                "signature": "sig",
                "mintAddress": NATIVE_SOL_MINT,
                "calculatedAmount": "1.5",
                "amount": "1500000000",
                "blockTime": 10,
                "callingMetadata": [{"programName": "Jupiter"}],
            }
        )

        assert transfer.amount == Decimal("1.5")
        assert transfer.is_native_sol
        assert transfer.program_name == "Jupiter"
        assert transfer.value_usd is None

    def test_falls_back_to_raw_amount(self) -> None:
        transfer = Transfer.from_dict({"signature": "sig", "amount": "42", "valueUsd": "10"})

        assert transfer.amount == Decimal("42")
        assert transfer.value_usd == Decimal("10")
        assert transfer.program_name is None
        assert transfer.sender_address is None

    def test_page_skips_unsigned_entries(self) -> None:
        page = TransferPage.from_dict(
            {"transfers": [{"signature": "a"}, {"amount": "1"}, {"signature": ""}]}
        )

        assert [t.signature for t in page.transfers] == ["a"]

    def test_page_without_transfers(self) -> None:
        assert TransferPage.from_dict({"transfers": None}).transfers == ()


class TestPnLSummary:
    def test_wrapped_and_flat_shapes(self) -> None:
        flat = {"realizedPnlUsd": "10", "unrealizedPnlUsd": "5", "tradesCount": 2}

        wrapped = PnLSummary.from_dict({"summary": flat})
        direct = PnLSummary.from_dict(flat)

        assert wrapped == direct
        assert wrapped.total_pnl_usd == Decimal("15")

    def test_to_dict_is_accepted_by_from_dict(self) -> None:
        summary = PnLSummary.from_dict(
            {
                "realizedPnlUsd": "-3.5",
                "winRate": 40,
                "worstPerformingToken": {"tokenSymbol": "BONK", "pnlUsd": "-9"},
            }
        )

        restored = PnLSummary.from_dict(summary.to_dict())

        assert restored == summary
        assert restored.worst_token is not None
        assert restored.worst_token.token_symbol == "BONK"
