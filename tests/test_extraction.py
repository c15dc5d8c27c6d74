"""
Unit tests for the ledger line parser.
"""
from decimal import Decimal

import pytest

from balancete.engine.extraction import (
    EMPTY_TEXT_WARNING,
    NO_ROWS_WARNING,
    LedgerLineParser,
    ParserState,
)
from balancete.engine.models import AccountGroup, ColumnOrder

LAYOUT_B_HEADER = "Codigo Descricao Saldo Anterior Debito Credito Saldo Atual"


class TestLedgerLineParser:
    """Tests for LedgerLineParser.parse."""

    @pytest.fixture
    def parser(self) -> LedgerLineParser:
        """Create parser instance."""
        return LedgerLineParser()

    def test_empty_text_yields_warning(self, parser: LedgerLineParser):
        """Empty input produces no rows and one warning."""
        result = parser.parse("   \n  ")
        assert result.rows == []
        assert result.warnings == [EMPTY_TEXT_WARNING]

    def test_text_without_values_yields_warning(self, parser: LedgerLineParser):
        """Text with no monetary rows produces a warning, not an error."""
        result = parser.parse("EMPRESA TESTE\nRelatorio sem valores\n")
        assert result.rows == []
        assert result.warnings == [NO_ROWS_WARNING]

    def test_single_token_line_is_skipped(self, parser: LedgerLineParser):
        """Lines with fewer than two monetary tokens are not data rows."""
        result = parser.parse("11 1.1.01 Caixa 1.000,00\n12 1.1.02 Bancos 10,00 20,00")
        assert len(result.rows) == 1
        assert result.rows[0].description == "Bancos"

    def test_parses_code_classification_and_description(self, parser: LedgerLineParser):
        """Leading code, dotted classification and description are split."""
        result = parser.parse("12 1.1.01 Caixa e Equivalentes 1.200,00 1.000,00 400,00 200,00")
        row = result.rows[0]

        assert row.code == "12"
        assert row.classification == "1.1.01"
        assert row.description == "Caixa e Equivalentes"
        assert row.current_balance.value == Decimal("1200.00")
        assert row.prior_balance.value == Decimal("1000.00")
        assert row.debit.value == Decimal("400.00")
        assert row.credit.value == Decimal("200.00")

    def test_keeps_raw_text_of_values(self, parser: LedgerLineParser):
        """Negative markers survive in raw text and sign."""
        result = parser.parse("21 2.1 Fornecedores (1.234,56) 500,00-")
        row = result.rows[0]
        assert row.current_balance.raw_text == "(1.234,56)"
        assert row.current_balance.value == Decimal("-1234.56")
        assert row.prior_balance.value == Decimal("-500.00")

    def test_splits_glued_values(self, parser: LedgerLineParser):
        """Two amounts rendered without a space are read as two columns."""
        result = parser.parse("11 1.1.01 Caixa 15.196.986,855.511.188,33")
        row = result.rows[0]
        assert row.current_balance.value == Decimal("15196986.85")
        assert row.prior_balance.value == Decimal("5511188.33")

    def test_splits_fused_code_and_classification(self, parser: LedgerLineParser):
        """A code glued to its classification is split apart."""
        result = parser.parse("371.1.3.02 Estoques 10,00 20,00")
        row = result.rows[0]
        assert row.code == "371"
        assert row.classification == "1.3.02"
        assert row.description == "Estoques"
        assert row.group == AccountGroup.ASSET

    def test_single_digit_root_is_not_split(self, parser: LedgerLineParser):
        """A dotted classification starting at a root digit stays whole."""
        result = parser.parse("1.1.01 Caixa 10,00 20,00")
        row = result.rows[0]
        assert row.code is None
        assert row.classification == "1.1.01"

    def test_group_inferred_from_classification_without_header(self, parser: LedgerLineParser):
        """Without a section title, the classification root decides the group."""
        result = parser.parse("263 3.1 Receita de Vendas 10,00 20,00")
        assert result.rows[0].group == AccountGroup.INCOME_STATEMENT

    def test_section_header_sets_group(self, parser: LedgerLineParser):
        """Rows after a section title take its group."""
        text = "PASSIVO\n21 9.9 Conta Qualquer 10,00 20,00"
        result = parser.parse(text)
        assert result.rows[0].group == AccountGroup.LIABILITY
        assert result.state.current_group == AccountGroup.LIABILITY

    def test_income_statement_header_synonyms(self, parser: LedgerLineParser):
        """Income-statement titles are recognized in several spellings."""
        for title in ("DRE", "Demonstração do Resultado do Exercício", "D.R.E."):
            result = parser.parse(f"{title}\n99 Conta 10,00 20,00")
            assert result.rows[0].group == AccountGroup.INCOME_STATEMENT, title

    def test_section_match_is_whole_word(self, parser: LedgerLineParser):
        """A word that merely starts with a section name is not a title."""
        result = parser.parse("ATIVOS DIVERSOS\n11 Caixa 10,00 20,00")
        assert result.rows[0].group == AccountGroup.OTHER

    def test_title_line_with_values_is_data_row(self, parser: LedgerLineParser):
        """A section title carrying two or more values is emitted as a row."""
        result = parser.parse("ATIVO 1.000,00 2.000,00")
        assert len(result.rows) == 1
        assert result.rows[0].description == "ATIVO"

    def test_boilerplate_is_skipped(self, parser: LedgerLineParser):
        """Page headers and banners never become rows."""
        text = "\n".join([
            "CNPJ: 12.345.678/0001-90 1.000,00 2.000,00",
            "Página 2 de 10 1.000,00 2.000,00",
            "CONSOLIDADO 1.000,00 2.000,00",
            "11 Caixa 10,00 20,00",
        ])
        result = parser.parse(text)
        assert [r.description for r in result.rows] == ["Caixa"]


class TestColumnOrder:
    """Tests for column layout detection and token mapping."""

    @pytest.fixture
    def parser(self) -> LedgerLineParser:
        """Create parser instance."""
        return LedgerLineParser()

    def test_detects_prior_first_layout(self, parser: LedgerLineParser):
        """Header with Saldo Atual last switches to the prior-first layout."""
        result = parser.parse(f"{LAYOUT_B_HEADER}\n11 Caixa 100,00 40,00 10,00 130,00")
        row = result.rows[0]

        assert result.state.column_order == ColumnOrder.PRIOR_DEBIT_CREDIT_CURRENT
        assert row.prior_balance.value == Decimal("100.00")
        assert row.debit.value == Decimal("40.00")
        assert row.credit.value == Decimal("10.00")
        assert row.current_balance.value == Decimal("130.00")

    def test_detects_current_first_layout(self, parser: LedgerLineParser):
        """Header with Saldo Atual first keeps the default layout."""
        header = "Conta Saldo Atual Saldo Anterior Débito Crédito"
        assert parser.detect_column_order(header.upper().replace("É", "E")) == (
            ColumnOrder.CURRENT_PRIOR_DEBIT_CREDIT
        )

    def test_two_tokens_in_each_layout(self, parser: LedgerLineParser):
        """Two values map to (current, prior) or (prior, current)."""
        row_a = parser.parse("11 Caixa 100,00 200,00").rows[0]
        assert row_a.current_balance.value == Decimal("100.00")
        assert row_a.prior_balance.value == Decimal("200.00")
        assert row_a.debit is None and row_a.credit is None

        row_b = parser.parse(f"{LAYOUT_B_HEADER}\n11 Caixa 100,00 200,00").rows[0]
        assert row_b.prior_balance.value == Decimal("100.00")
        assert row_b.current_balance.value == Decimal("200.00")

    def test_three_tokens_fill_first_fields(self, parser: LedgerLineParser):
        """Three values fill the first three fields of the layout."""
        row_a = parser.parse("11 Caixa 1,00 2,00 3,00").rows[0]
        assert row_a.current_balance.value == Decimal("1.00")
        assert row_a.debit.value == Decimal("3.00")
        assert row_a.credit is None

        row_b = parser.parse(f"{LAYOUT_B_HEADER}\n11 Caixa 1,00 2,00 3,00").rows[0]
        assert row_b.prior_balance.value == Decimal("1.00")
        assert row_b.credit.value == Decimal("3.00")
        assert row_b.current_balance is None

    def test_trailing_four_tokens_are_used(self, parser: LedgerLineParser):
        """Extra leading values are ignored; the last four are mapped."""
        row = parser.parse("11 Caixa 9,99 1,00 2,00 3,00 4,00").rows[0]
        assert row.current_balance.value == Decimal("1.00")
        assert row.credit.value == Decimal("4.00")


class TestPendingTotalLine:
    """Tests for total lines that arrive before their section title."""

    @pytest.fixture
    def parser(self) -> LedgerLineParser:
        """Create parser instance."""
        return LedgerLineParser()

    def test_pending_total_attached_to_next_header(self, parser: LedgerLineParser):
        """A bare total line is emitted under the title that follows it."""
        text = "1 15.196.986,85 14.000.000,00 3.000.000,00 1.803.013,15\nATIVO"
        result = parser.parse(text)

        assert len(result.rows) == 1
        row = result.rows[0]
        assert row.group == AccountGroup.ASSET
        assert row.description == "TOTAL ATIVO"
        assert row.code == "1"
        assert row.classification is None
        assert row.current_balance.value == Decimal("15196986.85")
        assert row.raw_line.startswith("1 15.196.986,85")

    def test_pending_needs_four_values(self, parser: LedgerLineParser):
        """With fewer than four values the line is emitted immediately."""
        result = parser.parse("1 100,00 200,00 300,00\nATIVO")
        assert result.rows[0].description is None
        assert result.rows[0].group == AccountGroup.OTHER

    def test_only_in_other_group(self, parser: LedgerLineParser):
        """Inside a section, a bare total line is an ordinary row."""
        result = parser.parse("PASSIVO\n2 5,00 4,00 3,00 2,00\nDRE")
        row = result.rows[0]
        assert row.group == AccountGroup.LIABILITY
        assert row.description is None

    def test_latest_pending_line_wins(self, parser: LedgerLineParser):
        """An earlier pending line is flushed as OTHER; the latest is attached."""
        text = "\n".join([
            "1 1.000,00 2.000,00 3.000,00 4.000,00",
            "2 5.000,00 6.000,00 7.000,00 8.000,00",
            "PASSIVO",
        ])
        result = parser.parse(text)

        assert [r.group for r in result.rows] == [AccountGroup.OTHER, AccountGroup.LIABILITY]
        assert result.rows[0].code == "1"
        assert result.rows[0].description is None
        assert result.rows[1].code == "2"
        assert result.rows[1].description == "TOTAL PASSIVO"

    def test_pending_flushed_at_end_of_input(self, parser: LedgerLineParser):
        """A pending line is never dropped."""
        result = parser.parse("11 Caixa 1,00 2,00\n1 1.000,00 2.000,00 3.000,00 4.000,00")

        assert len(result.rows) == 2
        assert result.rows[-1].group == AccountGroup.OTHER
        assert result.rows[-1].description is None
        assert result.state.pending_total is None


class TestParserFold:
    """Tests for the explicit fold state."""

    def test_step_returns_new_state(self):
        """step never mutates the state it receives."""
        parser = LedgerLineParser()
        state = ParserState()

        next_state, rows = parser.step(state, "PASSIVO")

        assert rows == []
        assert next_state.current_group == AccountGroup.LIABILITY
        assert state.current_group == AccountGroup.OTHER

    def test_parse_is_independent_per_document(self):
        """No parse state leaks from one document into the next."""
        parser = LedgerLineParser()
        parser.parse(f"{LAYOUT_B_HEADER}\nPASSIVO\n21 Conta 1,00 2,00")

        result = parser.parse("11 Caixa 100,00 200,00")
        assert result.rows[0].group == AccountGroup.OTHER
        assert result.rows[0].current_balance.value == Decimal("100.00")

    def test_sample_document(self, first_quarter_text: str):
        """The sample quarter yields every account row and the total."""
        result = LedgerLineParser().parse(first_quarter_text)

        assert len(result.rows) == 17
        assert result.warnings == []
        assert result.rows[0].description == "TOTAL ATIVO"
        groups = {r.group for r in result.rows}
        assert groups == {
            AccountGroup.ASSET,
            AccountGroup.LIABILITY,
            AccountGroup.INCOME_STATEMENT,
        }
