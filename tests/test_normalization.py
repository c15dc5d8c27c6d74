"""
Unit tests for the classification normalizer.
"""
from decimal import Decimal

import pytest

from balancete.engine.models import AccountGroup, MoneyValue, RawAccountRow
from balancete.engine.normalization import (
    ClassificationNormalizer,
    classification_root,
    normalize_text,
)


class TestClassificationNormalizer:
    """Tests for ClassificationNormalizer.normalize."""

    @pytest.fixture
    def normalizer(self) -> ClassificationNormalizer:
        """Create normalizer instance."""
        return ClassificationNormalizer()

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("3.1.1.01", "3.1.1.01"),
            ("1.1", "1.1"),
            ("311.01", "3.1.1.01"),
            ("2111", "2.1.1.1"),
            ("371.1.3.02", "371.1.3.02"),
            ("4.1.01", "4.1.01"),
            ("12345", "12345"),
            ("1", "1"),
        ],
    )
    def test_normalize(self, normalizer: ClassificationNormalizer, raw: str, expected: str):
        """Fused forms are re-segmented; anything else passes through."""
        assert normalizer.normalize(raw) == expected

    def test_empty_is_none(self, normalizer: ClassificationNormalizer):
        """Missing classifications stay missing."""
        assert normalizer.normalize(None) is None
        assert normalizer.normalize("  ") is None

    @pytest.mark.parametrize(
        "raw",
        ["3.1.1.01", "311.01", "2111", "371.1.3.02", "9.9", "1", "ABC", " 1.2 "],
    )
    def test_idempotent(self, normalizer: ClassificationNormalizer, raw: str):
        """Normalizing twice equals normalizing once."""
        once = normalizer.normalize(raw)
        assert normalizer.normalize(once) == once

    @pytest.mark.parametrize(
        "classification,group",
        [
            ("1.1.01", AccountGroup.ASSET),
            ("2", AccountGroup.LIABILITY),
            ("3.7.01", AccountGroup.INCOME_STATEMENT),
            ("371.1.3.02", AccountGroup.OTHER),
            ("4.1", AccountGroup.OTHER),
            (None, AccountGroup.OTHER),
        ],
    )
    def test_infer_group(self, normalizer: ClassificationNormalizer, classification, group):
        """Only a root digit followed by a dot or the end counts."""
        assert normalizer.infer_group(classification) == group

    def test_classification_root(self):
        assert classification_root("3.1.2") == "3"
        assert classification_root("31.2") is None


class TestNormalizeRows:
    """Tests for RawAccountRow to NormalizedRow conversion."""

    @pytest.fixture
    def normalizer(self) -> ClassificationNormalizer:
        """Create normalizer instance."""
        return ClassificationNormalizer()

    def test_injects_period_and_keeps_source(self, normalizer: ClassificationNormalizer):
        """Period context is added and the raw row is preserved untouched."""
        raw = RawAccountRow(
            raw_line="371 311.01 Vendas 10,00 20,00",
            code="371",
            classification="311.01",
            description=" Vendas ",
            current_balance=MoneyValue("10,00", Decimal("10.00")),
        )

        rows = normalizer.normalize_rows([raw], " T1/2024 ", 2024)

        assert len(rows) == 1
        row = rows[0]
        assert row.period == "T1/2024"
        assert row.year == 2024
        assert row.classification == "3.1.1.01"
        assert row.group == AccountGroup.INCOME_STATEMENT
        assert row.description == "Vendas"
        assert row.current_balance.value == Decimal("10.00")
        assert row.source is raw
        assert raw.classification == "311.01"

    def test_parser_group_is_kept(self, normalizer: ClassificationNormalizer):
        """A group assigned by a section title is not overridden."""
        raw = RawAccountRow(raw_line="x", group=AccountGroup.LIABILITY, classification="1.1")
        assert normalizer.normalize_row(raw, "2024").group == AccountGroup.LIABILITY

    @pytest.mark.parametrize(
        "description,group",
        [
            ("TOTAL ATIVO", AccountGroup.ASSET),
            ("Passivo Total", AccountGroup.LIABILITY),
            ("Resultado do Exercício", AccountGroup.INCOME_STATEMENT),
            ("Caixa", AccountGroup.OTHER),
        ],
    )
    def test_description_fallback(self, normalizer: ClassificationNormalizer, description, group):
        """Rows left in OTHER take the group named by their description."""
        raw = RawAccountRow(raw_line="x", description=description)
        assert normalizer.normalize_row(raw, "2024").group == group

    def test_normalize_text(self):
        assert normalize_text("  Dedução   de  Vendas ") == "DEDUCAO DE VENDAS"
        assert normalize_text(None) == ""
