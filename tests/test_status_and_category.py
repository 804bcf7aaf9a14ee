"""
Tests for status inference and support category classification.
"""
import pytest

from apoios.core.config import DEFAULT_CATEGORY_PRECEDENCE, _parse_category_precedence
from apoios.core.domain_models import ProgramStatus, SupportCategory
from apoios.core.status import infer_status
from apoios.enhance.category_classifier import CategoryClassifier


class TestInferStatus:
    """Tests for infer_status."""

    @pytest.mark.parametrize("text,expected", [
        ("Candidaturas abertas até 30 de junho", ProgramStatus.OPEN),
        ("Período de submissões abertas", ProgramStatus.OPEN),
        ("Aviso encerrado", ProgramStatus.CLOSED),
        ("Programa terminado em 2023", ProgramStatus.CLOSED),
        ("Disponível em breve", ProgramStatus.PLANNED),
        ("Coming soon", ProgramStatus.PLANNED),
        ("Regulamento municipal de apoio", ProgramStatus.UNKNOWN),
        ("", ProgramStatus.UNKNOWN),
        (None, ProgramStatus.UNKNOWN),
    ])
    def test_rules(self, text, expected):
        assert infer_status(text) == expected

    def test_open_checked_before_closed(self):
        """Text that mentions both states resolves to OPEN."""
        assert infer_status("Candidaturas abertas; a fase anterior está encerrada") == ProgramStatus.OPEN


class TestCategoryClassifier:
    """Tests for CategoryClassifier."""

    def test_highest_score_wins(self):
        classifier = CategoryClassifier()
        text = "Apoio a bomba de calor e bombas de calor aerotermia, com janela nova"
        assert classifier.classify(text) == SupportCategory.BOMBAS_CALOR

    def test_no_keywords_is_outro(self):
        assert CategoryClassifier().classify("Apoio à natalidade") == SupportCategory.OUTRO
        assert CategoryClassifier().classify(None) == SupportCategory.OUTRO

    def test_tie_uses_declared_precedence(self):
        """One JANELAS hit and one SOLAR hit: JANELAS is declared first."""
        text = "caixilharia e fotovoltaico"
        assert CategoryClassifier().classify(text) == SupportCategory.JANELAS

    def test_custom_precedence_changes_tie_break(self):
        classifier = CategoryClassifier(precedence=(SupportCategory.SOLAR, SupportCategory.JANELAS))
        assert classifier.classify("caixilharia e fotovoltaico") == SupportCategory.SOLAR

    def test_score_lists_every_category(self):
        scores = CategoryClassifier().score("telhado")
        assert set(scores) == set(DEFAULT_CATEGORY_PRECEDENCE)
        assert scores[SupportCategory.COBERTURA] == 1

    def test_precedence_parsing(self):
        parsed = _parse_category_precedence("solar, nonsense, JANELAS, outro")
        assert parsed[:2] == (SupportCategory.SOLAR, SupportCategory.JANELAS)
        assert len(parsed) == len(DEFAULT_CATEGORY_PRECEDENCE)
        assert SupportCategory.OUTRO not in parsed
