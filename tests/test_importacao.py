# Versão: 1.0.0 (2025-10-02)
from datetime import date
from io import BytesIO

import pandas as pd
import pytest

from models import Contrato, Fiscal
from services.importacao_service import (
    ContratoDuplicadoError, ImportacaoError, gerar_template, importar_planilha, ler_planilha,
    vincular_fiscais,
)

CABECALHO = (
    "Número do Contrato;Modalidade;Objeto;Empresa Contratada;Valor;Data Início;Data Fim;"
    "Status;Número Processo;Possui Prorrogação;Nome Fiscal;Email Fiscal"
)


def _csv(*linhas: str) -> bytes:
    return ("\n".join((CABECALHO,) + linhas) + "\n").encode("utf-8")


def test_importa_tres_linhas_com_fiscal_na_segunda(db_session):
    conteudo = _csv(
        "001/2024;pregão;Limpeza;ACME Ltda;R$ 1.234,56;15/01/2024;31/12/2024;vigente;P-1;Sim;;",
        "002/2024;Dispensa;Vigilância;Beta SA;2500;2024-02-01;2025-01-31;Encerrado;P-2;Não;Maria;maria@x.gov.br",
        "003/2024;desconhecida;Manutenção;Gama ME;abc;01/03/2024;28/02/2025;;P-3;;;",
    )
    res = importar_planilha(db_session, conteudo, "contratos.csv")

    assert res.importados == 3
    assert res.ignorados == 0
    assert res.fiscais == 1
    assert res.mensagem == "3 contrato(s) importado(s) com sucesso!"

    c1 = db_session.query(Contrato).filter_by(contract_number="001/2024").one()
    assert c1.modality == "Pregão"
    assert c1.status == "Vigente"
    assert c1.contract_value == 1234.56
    assert c1.start_date == date(2024, 1, 15)
    assert c1.has_extension_clause is True

    c3 = db_session.query(Contrato).filter_by(contract_number="003/2024").one()
    assert c3.modality == "Pregão"
    assert c3.status == "Vigente"
    assert c3.contract_value == 0.0

    fiscais = db_session.query(Fiscal).all()
    assert len(fiscais) == 1
    c2 = db_session.query(Contrato).filter_by(contract_number="002/2024").one()
    assert fiscais[0].contract_id == c2.id
    assert fiscais[0].supervisor_name == "Maria"


def test_linha_sem_numero_e_ignorada(db_session):
    conteudo = _csv(
        "001/2024;Pregão;Limpeza;ACME;100;2024-01-01;2024-12-31;Vigente;P-1;;;",
        ";Pregão;Sem número;ACME;100;2024-01-01;2024-12-31;Vigente;P-9;;Joana;",
        "003/2024;Pregão;Sem processo;ACME;100;2024-01-01;2024-12-31;Vigente;;;;",
    )
    res = importar_planilha(db_session, conteudo, "contratos.csv")

    assert res.importados == 1
    assert res.ignorados == 2
    assert "2 linha(s) ignorada(s)" in res.mensagem
    assert db_session.query(Fiscal).count() == 0


def test_numero_duplicado_nao_grava_nada(db_session):
    db_session.add(Contrato(
        contract_number="002/2024", modality="Pregão", object="Existente", contracted_company="X",
        contract_value=10, start_date=date(2024, 1, 1), end_date=date(2024, 12, 31),
        status="Vigente", process_number="P-0",
    ))
    db_session.commit()

    conteudo = _csv(
        "001/2024;Pregão;Limpeza;ACME;100;2024-01-01;2024-12-31;Vigente;P-1;;;",
        "002/2024;Pregão;Repetido;ACME;100;2024-01-01;2024-12-31;Vigente;P-2;;Ana;",
    )
    with pytest.raises(ContratoDuplicadoError) as exc:
        importar_planilha(db_session, conteudo, "contratos.csv")

    assert "mesmo número" in str(exc.value)
    assert db_session.query(Contrato).count() == 1
    assert db_session.query(Fiscal).count() == 0


def test_duplicado_dentro_da_planilha(db_session):
    conteudo = _csv(
        "001/2024;Pregão;A;ACME;1;2024-01-01;2024-12-31;Vigente;P-1;;;",
        "001/2024;Pregão;B;ACME;1;2024-01-01;2024-12-31;Vigente;P-2;;;",
    )
    with pytest.raises(ContratoDuplicadoError):
        importar_planilha(db_session, conteudo, "contratos.csv")
    assert db_session.query(Contrato).count() == 0


def test_data_irreconhecivel_aborta_com_erro_generico(db_session):
    conteudo = _csv("001/2024;Pregão;A;ACME;1;ontem;2024-12-31;Vigente;P-1;;;")
    with pytest.raises(ImportacaoError) as exc:
        importar_planilha(db_session, conteudo, "contratos.csv")
    assert not isinstance(exc.value, ContratoDuplicadoError)
    assert "linha 2" in str(exc.value)
    assert db_session.query(Contrato).count() == 0


def test_csv_com_datas_seriais(db_session):
    conteudo = _csv("001/2024;Pregão;A;ACME;1;45000;45365;Vigente;P-1;;;")
    res = importar_planilha(db_session, conteudo, "contratos.csv")
    assert res.importados == 1
    c = db_session.query(Contrato).one()
    assert c.start_date == date(2023, 3, 15)
    assert c.end_date == date(2024, 3, 14)


def _xlsx(linhas):
    buf = BytesIO()
    pd.DataFrame(linhas).to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


def _linha_xlsx(numero, **over):
    base = {
        "numero_contrato": numero, "object": "Software", "contracted_company": "Delta",
        "contract_value": 100, "start_date": 45000, "end_date": 45365, "process_number": "P-" + numero,
    }
    base.update(over)
    return base


def test_serial_fora_do_intervalo_vira_data_invalida(db_session):
    conteudo = _xlsx([_linha_xlsx("1", start_date=99999999999)])
    with pytest.raises(ImportacaoError) as exc:
        importar_planilha(db_session, conteudo, "contratos.xlsx")
    assert "data inválida na linha 2" in str(exc.value)
    assert db_session.query(Contrato).count() == 0


def test_valor_negativo_perde_o_sinal(db_session):
    conteudo = _xlsx([_linha_xlsx("1", contract_value=-500), _linha_xlsx("2")])
    res = importar_planilha(db_session, conteudo, "contratos.xlsx")
    assert res.importados == 2
    c = db_session.query(Contrato).filter_by(contract_number="1").one()
    assert c.contract_value == 500.0


def test_formato_nao_suportado(db_session):
    with pytest.raises(ImportacaoError):
        importar_planilha(db_session, b"qualquer", "contratos.pdf")


def test_xlsx_com_serial_e_cabecalho_em_ingles(db_session):
    df = pd.DataFrame([{
        "numero_contrato": "010/2023",
        "modality": "Adesão",
        "object": "Software",
        "contracted_company": "Delta",
        "contract_value": 5000.5,
        "start_date": 45000,
        "end_date": 45365,
        "status": "Prorrogado",
        "process_number": "P-10",
        "has_extension_clause": True,
    }])
    buf = BytesIO()
    df.to_excel(buf, index=False, engine="openpyxl")

    res = importar_planilha(db_session, buf.getvalue(), "contratos.xlsx")

    assert res.importados == 1
    c = db_session.query(Contrato).one()
    assert c.start_date == date(2023, 3, 15)
    assert c.modality == "Adesão"
    assert c.status == "Prorrogado"
    assert c.has_extension_clause is True


def test_vincular_fiscais_descarta_sem_contrato():
    pares = [(1, "A"), (2, "B")]
    fiscais = [
        {"supervisor_name": "X", "original_contract_number": "B"},
        {"supervisor_name": "Y", "original_contract_number": "Z"},
    ]
    vinculados = vincular_fiscais(pares, fiscais)
    assert vinculados == [
        {"contract_id": 2, "supervisor_name": "X", "supervisor_email": None, "supervisor_nomination": None}
    ]


def test_template_tem_colunas_em_portugues():
    linhas = ler_planilha(gerar_template(), "modelo.xlsx")
    assert len(linhas) == 1
    assert linhas[0]["Número do Contrato"] == "001/2024"
    assert "Nome Fiscal" in linhas[0]
