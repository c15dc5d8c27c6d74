"""
Pytest configuration and fixtures.
"""
from typing import Generator

import pytest

from balancete.config import HeuristicSettings, Settings, get_settings
from balancete.engine.models import SourceDocument

FIRST_QUARTER_TEXT = """EMPRESA EXEMPLO COMERCIO LTDA
CNPJ: 00.000.000/0001-00
PERIODO: 01/01/2024 - 31/03/2024
BALANCETE DE VERIFICACAO
Codigo Classificacao Descricao Saldo Atual Saldo Anterior Debito Credito
1 15.196.986,85 14.000.000,00 3.000.000,00 1.803.013,15
ATIVO
11 1.1 ATIVO CIRCULANTE 3.000.000,00 2.500.000,00 1.000.000,00 500.000,00
12 1.1.01 Caixa e Equivalentes 1.200.000,00 1.000.000,00 400.000,00 200.000,00
13 1.1.02 Clientes 1.800.000,00 1.500.000,00 600.000,00 300.000,00
14 1.2 ATIVO NAO CIRCULANTE 2.196.986,85 2.000.000,00 300.000,00 103.013,15
15 1.9 Conta Corrompida 9.999.999,99 0,00 0,00 0,00
PASSIVO
2 5.196.986,85 4.800.000,00 700.000,00 1.096.986,85
21 2.1 PASSIVO CIRCULANTE 1.500.000,00 1.400.000,00 200.000,00 300.000,00
22 2.1.01 Fornecedores 900.000,00 800.000,00 100.000,00 200.000,00
23 2.3 PATRIMONIO LIQUIDO 3.696.986,85 3.400.000,00 0,00 296.986,85
DEMONSTRACAO DO RESULTADO
31 3.1 RECEITA OPERACIONAL BRUTA 2.000.000,00 0,00 0,00 2.000.000,00
32 3.2 DEDUCOES DA RECEITA 300.000,00 0,00 300.000,00 0,00
33 3.3 CUSTO DAS MERCADORIAS VENDIDAS 800.000,00 0,00 800.000,00 0,00
37 3.7 DESPESAS ADMINISTRATIVAS 400.000,00 0,00 400.000,00 0,00
371 3.7.01 Salarios 250.000,00 0,00 250.000,00 0,00
372 3.7.02 Alugueis 150.000,00 0,00 150.000,00 0,00
39 3.9 DESPESAS COMERCIAIS 100.000,00 0,00 100.000,00 0,00
Pagina 1 de 1
"""

SECOND_QUARTER_TEXT = """EMPRESA EXEMPLO COMERCIO LTDA
CNPJ: 00.000.000/0001-00
PERIODO: 01/04/2024 - 30/06/2024
Codigo Classificacao Descricao Saldo Atual Saldo Anterior Debito Credito
ATIVO
1 6.000.000,00 5.196.986,85 2.000.000,00 1.196.986,85
11 1.1 ATIVO CIRCULANTE 3.500.000,00 3.000.000,00 1.200.000,00 700.000,00
12 1.1.01 Caixa e Equivalentes 1.500.000,00 1.200.000,00 500.000,00 200.000,00
13 1.1.02 Clientes 2.000.000,00 1.800.000,00 700.000,00 500.000,00
14 1.2 ATIVO NAO CIRCULANTE 2.500.000,00 2.196.986,85 400.000,00 96.986,85
PASSIVO
2 6.000.000,00 5.196.986,85 900.000,00 1.703.013,15
21 2.1 PASSIVO CIRCULANTE 1.800.000,00 1.500.000,00 300.000,00 600.000,00
22 2.1.01 Fornecedores 1.000.000,00 900.000,00 150.000,00 250.000,00
23 2.3 PATRIMONIO LIQUIDO 4.200.000,00 3.696.986,85 0,00 503.013,15
DEMONSTRACAO DO RESULTADO
31 3.1 RECEITA OPERACIONAL BRUTA 2.500.000,00 0,00 0,00 2.500.000,00
32 3.2 DEDUCOES DA RECEITA 350.000,00 0,00 350.000,00 0,00
33 3.3 CUSTO DAS MERCADORIAS VENDIDAS 900.000,00 0,00 900.000,00 0,00
37 3.7 DESPESAS ADMINISTRATIVAS 450.000,00 0,00 450.000,00 0,00
371 3.7.01 Salarios 300.000,00 0,00 300.000,00 0,00
372 3.7.02 Alugueis 150.000,00 0,00 150.000,00 0,00
39 3.9 DESPESAS COMERCIAIS 120.000,00 0,00 120.000,00 0,00
"""


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Reset cached settings around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults, independent of the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def heuristics() -> HeuristicSettings:
    """Default calibration constants."""
    return HeuristicSettings()


@pytest.fixture
def first_quarter_text() -> str:
    return FIRST_QUARTER_TEXT


@pytest.fixture
def second_quarter_text() -> str:
    return SECOND_QUARTER_TEXT


@pytest.fixture
def quarterly_documents() -> list:
    """Two quarterly balancetes, submitted out of order."""
    return [
        SourceDocument(file_name="balancete_2trim_2024.txt", text=SECOND_QUARTER_TEXT),
        SourceDocument(file_name="balancete_1trim_2024.txt", text=FIRST_QUARTER_TEXT),
    ]
