from datetime import date, datetime

from utils.planilha_utils import (
    normalizar_enum, normalizar_modalidade, normalizar_status, parse_data_planilha,
    parse_moeda, parse_sim_nao, validar_linha,
)
from models import MODALIDADES


def test_normalizar_enum_ignora_caixa_e_espacos():
    assert normalizar_enum("  pregão ", MODALIDADES) == "Pregão"
    assert normalizar_enum("TOMADA DE PREÇOS", MODALIDADES) == "Tomada de Preços"
    assert normalizar_enum("pregao", MODALIDADES) is None  # sem acento não casa
    assert normalizar_enum(None, MODALIDADES) is None


def test_normalizar_com_padrao():
    assert normalizar_modalidade("leilão") == "Pregão"
    assert normalizar_modalidade("dispensa") == "Dispensa"
    assert normalizar_status("") == "Vigente"
    assert normalizar_status("encerrado") == "Encerrado"


def test_parse_data_planilha():
    assert parse_data_planilha(45000) == "2023-03-15"
    assert parse_data_planilha(45000.0) == "2023-03-15"
    assert parse_data_planilha("15/03/2023") == "2023-03-15"
    assert parse_data_planilha("2023-03-15") == "2023-03-15"
    assert parse_data_planilha(datetime(2023, 3, 15, 10, 30)) == "2023-03-15"
    assert parse_data_planilha(date(2024, 1, 2)) == "2024-01-02"
    assert parse_data_planilha("amanhã") == "amanhã"
    assert parse_data_planilha(None) == ""
    assert parse_data_planilha("   ") == ""


def test_parse_moeda():
    assert parse_moeda("R$ 1.234,56") == 1234.56
    assert parse_moeda("1500,5") == 1500.5
    assert parse_moeda("1,234.56") == 1234.56
    assert parse_moeda("2500") == 2500.0
    assert parse_moeda(99.9) == 99.9
    assert parse_moeda("abc") == 0.0
    assert parse_moeda(None) == 0.0


def test_parse_sim_nao():
    assert parse_sim_nao("Sim") is True
    assert parse_sim_nao(" SIM ") is True
    assert parse_sim_nao(True) is True
    assert parse_sim_nao("Não") is False
    assert parse_sim_nao(None) is False


def _linha(**over):
    base = {
        "contract_number": "001/2024",
        "object": "Limpeza",
        "process_number": "P-1",
        "start_date": "2024-01-01",
        "end_date": "2024-12-31",
        "contracted_company": "ACME",
    }
    base.update(over)
    return base


def test_validar_linha():
    assert validar_linha(_linha()) is True
    assert validar_linha(_linha(contract_number=None)) is False
    assert validar_linha(_linha(contract_number="  ")) is False
    assert validar_linha(_linha(end_date="")) is False
    assert validar_linha(_linha(contracted_company=None)) is False


def test_parse_data_planilha_serial_em_texto_e_fora_do_intervalo():
    # CSV lido como texto: serial só com dígitos também converte
    assert parse_data_planilha("45000") == "2023-03-15"
    assert parse_data_planilha(" 45365 ") == "2024-03-14"
    # fora do intervalo de datas: volta cru em vez de estourar
    assert parse_data_planilha(99999999999) == "99999999999"
    assert parse_data_planilha(float("inf")) == "inf"
    assert parse_data_planilha("99999999999") == "99999999999"


def test_parse_moeda_numerico_descarta_sinal():
    assert parse_moeda(-500) == 500.0
    assert parse_moeda(-12.5) == 12.5
    assert parse_moeda(float("inf")) == 0.0
