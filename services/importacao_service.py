# services/importacao_service.py
# Versão: 1.4.0 (2025-10-02)
#
# Importação de contratos por planilha (.xlsx/.xls/.csv):
#   1) lê a primeira aba (pandas) e mapeia colunas PT -> campos (fallback EN)
#   2) normaliza modalidade/status (sem correspondência -> Pregão/Vigente)
#   3) ignora linhas sem número do contrato ou sem campos obrigatórios
#   4) insere TODOS os contratos aceitos num único lote e obtém os IDs
#   5) vincula os fiscais ao contrato pelo número (contract_number) e insere
#      num segundo lote
#
# Falhas:
#   - lote de contratos: nada é gravado; duplicidade de número gera
#     ContratoDuplicadoError, o resto ImportacaoError.
#   - lote de fiscais: só roda se os contratos entraram; se falhar, os
#     contratos continuam gravados (FiscaisImportacaoError).

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import Contrato, Fiscal, MODALIDADES, STATUS_CONTRATO
from utils.db_utils import violacao_unicidade
from utils.planilha_utils import (
    as_text,
    iso_para_date,
    normalizar_modalidade,
    normalizar_status,
    parse_data_planilha,
    parse_moeda,
    parse_sim_nao,
    pick,
    validar_linha,
)

log = logging.getLogger("uvicorn.error")

EXTENSOES_ACEITAS = (".xlsx", ".xls", ".csv")

# campo -> (rótulo PT, fallback EN)
COLUNAS = {
    "contract_number": ("Número do Contrato", "numero_contrato"),
    "gms_number": ("Número GMS", "gms_number"),
    "modality": ("Modalidade", "modality"),
    "object": ("Objeto", "object"),
    "contracted_company": ("Empresa Contratada", "contracted_company"),
    "contract_value": ("Valor", "contract_value"),
    "start_date": ("Data Início", "start_date"),
    "end_date": ("Data Fim", "end_date"),
    "status": ("Status", "status"),
    "process_number": ("Número Processo", "process_number"),
    "has_extension_clause": ("Possui Prorrogação", "has_extension_clause"),
    "manager_name": ("Nome Gestor", "manager_name"),
    "manager_email": ("Email Gestor", "manager_email"),
    "manager_nomination": ("Nomeação Gestor", "manager_nomination"),
    "supervisor_name": ("Nome Fiscal", "supervisor_name"),
    "supervisor_email": ("Email Fiscal", "supervisor_email"),
    "supervisor_nomination": ("Nomeação Fiscal", "supervisor_nomination"),
}

TEMPLATE_LINHA = {
    "Número do Contrato": "001/2024",
    "Número GMS": "GMS-2024-001 (Opcional)",
    "Modalidade": ", ".join(MODALIDADES),
    "Objeto": "Descrição detalhada do objeto do contrato",
    "Empresa Contratada": "Nome da Empresa Ltda",
    "Valor": "100000.00",
    "Data Início": "2024-01-15",
    "Data Fim": "2024-12-31",
    "Status": ", ".join(STATUS_CONTRATO),
    "Número Processo": "23456.789/2023-10",
    "Possui Prorrogação": "Sim ou Não",
    "Nome Gestor": "Nome do Gestor",
    "Email Gestor": "gestor@exemplo.gov.br",
    "Nomeação Gestor": "Portaria",
    "Nome Fiscal": "Nome do Fiscal",
    "Email Fiscal": "fiscal@exemplo.gov.br",
    "Nomeação Fiscal": "Cláusula Contratual",
}


# ------------------------------ erros ---------------------------------

class ImportacaoError(Exception):
    """Falha genérica da importação (nada foi gravado)."""


class ContratoDuplicadoError(ImportacaoError):
    def __init__(self, detalhe: str = ""):
        self.detalhe = detalhe
        super().__init__(
            "Erro ao importar: já existe contrato com o mesmo número "
            "(repetido na planilha ou já cadastrado)."
        )


class FiscaisImportacaoError(ImportacaoError):
    """Contratos gravados, mas o lote de fiscais falhou."""

    def __init__(self, importados: int, detalhe: str = ""):
        self.importados = importados
        self.detalhe = detalhe
        super().__init__(
            f"{importados} contrato(s) importado(s), mas houve erro ao salvar os fiscais: {detalhe}"
        )


# ------------------------------ resultado -----------------------------

@dataclass
class ResultadoImportacao:
    importados: int = 0
    ignorados: int = 0
    fiscais: int = 0

    @property
    def mensagem(self) -> str:
        msg = f"{self.importados} contrato(s) importado(s) com sucesso!"
        if self.ignorados:
            msg += f" {self.ignorados} linha(s) ignorada(s) por falta de campos obrigatórios."
        return msg

    def as_dict(self) -> Dict[str, Any]:
        return {
            "importados": self.importados,
            "ignorados": self.ignorados,
            "fiscais": self.fiscais,
            "mensagem": self.mensagem,
        }


# ------------------------------ leitura -------------------------------

def _decode(conteudo: bytes) -> str:
    for enc in ("utf-8-sig", "latin-1"):
        try:
            return conteudo.decode(enc)
        except UnicodeDecodeError:
            continue
    raise ImportacaoError("Não foi possível decodificar o CSV.")


def _csv_sep(texto: str) -> str:
    primeira = texto.splitlines()[0] if texto else ""
    return ";" if primeira.count(";") > primeira.count(",") else ","


def ler_planilha(conteudo: bytes, nome_arquivo: str) -> List[Dict[str, Any]]:
    """Lê a primeira aba como lista de dicts; células vazias viram None."""
    ext = Path(nome_arquivo or "").suffix.lower()
    if ext not in EXTENSOES_ACEITAS:
        raise ImportacaoError(f"Formato não suportado: {ext or '?'} (use .xlsx, .xls ou .csv)")
    if not conteudo:
        raise ImportacaoError("Arquivo vazio.")

    try:
        if ext == ".csv":
            texto = _decode(conteudo)
            df = pd.read_csv(StringIO(texto), sep=_csv_sep(texto), dtype=str, keep_default_na=False)
        else:
            df = pd.read_excel(BytesIO(conteudo), sheet_name=0, dtype=object)
    except ImportacaoError:
        raise
    except Exception as e:  # pandas/openpyxl/xlrd levantam tipos variados
        raise ImportacaoError(f"Não foi possível ler a planilha: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    linhas = []
    for registro in df.to_dict(orient="records"):
        linhas.append({k: (None if pd.isna(v) else v) for k, v in registro.items()})
    return linhas


def mapear_linha(bruta: Dict[str, Any]) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """Linha crua -> (dados do contrato, dados do fiscal ou None)."""

    def col(campo):
        return pick(bruta, *COLUNAS[campo])

    contrato = {
        "contract_number": as_text(col("contract_number")),
        "gms_number": as_text(col("gms_number")),
        "modality": normalizar_modalidade(col("modality")),
        "object": as_text(col("object")),
        "contracted_company": as_text(col("contracted_company")),
        "contract_value": parse_moeda(col("contract_value")),
        "start_date": parse_data_planilha(col("start_date")),
        "end_date": parse_data_planilha(col("end_date")),
        "status": normalizar_status(col("status")),
        "process_number": as_text(col("process_number")),
        "has_extension_clause": (
            parse_sim_nao(bruta.get("Possui Prorrogação"))
            or bruta.get("has_extension_clause") is True
            or parse_sim_nao(bruta.get("has_extension_clause"))
        ),
        "manager_name": as_text(col("manager_name")),
        "manager_email": as_text(col("manager_email")),
        "manager_nomination": as_text(col("manager_nomination")),
    }

    nome_fiscal = as_text(col("supervisor_name"))
    fiscal = None
    if nome_fiscal:
        fiscal = {
            "supervisor_name": nome_fiscal,
            "supervisor_email": as_text(col("supervisor_email")),
            "supervisor_nomination": as_text(col("supervisor_nomination")),
            "original_contract_number": contrato["contract_number"],
        }
    return contrato, fiscal


# ------------------------------ gravação ------------------------------

def _montar_contrato(dados: Dict[str, Any], linha: int) -> Contrato:
    kwargs = dict(dados)
    for campo in ("start_date", "end_date"):
        try:
            kwargs[campo] = iso_para_date(dados[campo])
        except ValueError:
            raise ImportacaoError(
                f"Erro ao importar: data inválida na linha {linha} ({campo}={dados[campo]!r})."
            ) from None
    return Contrato(**kwargs)


def inserir_contratos(db: Session, aceitos: Sequence[Tuple[int, Dict[str, Any]]]) -> List[Tuple[int, str]]:
    """Insere o lote inteiro; devolve pares (id, contract_number)."""
    objs = [_montar_contrato(dados, linha) for linha, dados in aceitos]
    try:
        db.add_all(objs)
        db.flush()
        pares = [(c.id, c.contract_number) for c in objs]
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if violacao_unicidade(e):
            raise ContratoDuplicadoError(str(e.orig)) from e
        raise ImportacaoError(f"Erro ao importar: {e.orig}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise ImportacaoError(f"Erro ao importar: {e}") from e
    return pares


def vincular_fiscais(pares: Sequence[Tuple[int, str]], fiscais: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Associa cada fiscal ao ID do contrato de mesmo número (busca linear).
    Fiscal cujo número não aparece entre os inseridos é descartado.
    """
    vinculados = []
    for f in fiscais:
        contrato_id = None
        for cid, numero in pares:
            if numero == f["original_contract_number"]:
                contrato_id = cid
                break
        if contrato_id is None:
            continue
        vinculados.append({
            "contract_id": contrato_id,
            "supervisor_name": f["supervisor_name"],
            "supervisor_email": f.get("supervisor_email"),
            "supervisor_nomination": f.get("supervisor_nomination"),
        })
    return vinculados


def inserir_fiscais(db: Session, registros: Sequence[Dict[str, Any]], importados: int) -> int:
    if not registros:
        return 0
    try:
        db.add_all([Fiscal(**r) for r in registros])
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise FiscaisImportacaoError(importados, str(getattr(e, "orig", e))) from e
    return len(registros)


def importar_planilha(db: Session, conteudo: bytes, nome_arquivo: str) -> ResultadoImportacao:
    linhas = ler_planilha(conteudo, nome_arquivo)

    aceitos: List[Tuple[int, Dict[str, Any]]] = []
    fiscais: List[Dict[str, Any]] = []
    ignorados = 0
    # linha 1 é o cabeçalho
    for n, bruta in enumerate(linhas, start=2):
        contrato, fiscal = mapear_linha(bruta)
        if not validar_linha(contrato):
            ignorados += 1
            log.info("[importacao] linha %s ignorada (campos obrigatórios ausentes)", n)
            continue
        aceitos.append((n, contrato))
        if fiscal:
            fiscais.append(fiscal)

    if not aceitos:
        log.info("[importacao] %s: nenhuma linha válida (%s ignoradas)", nome_arquivo, ignorados)
        return ResultadoImportacao(importados=0, ignorados=ignorados)

    pares = inserir_contratos(db, aceitos)
    log.info("[importacao] %s: %s contrato(s) inserido(s), %s ignorada(s)", nome_arquivo, len(pares), ignorados)

    registros = vincular_fiscais(pares, fiscais)
    descartados = len(fiscais) - len(registros)
    if descartados:
        log.warning("[importacao] %s fiscal(is) sem contrato correspondente descartado(s)", descartados)
    qtd_fiscais = inserir_fiscais(db, registros, len(pares))

    return ResultadoImportacao(importados=len(pares), ignorados=ignorados, fiscais=qtd_fiscais)


# ------------------------------ template ------------------------------

def gerar_template() -> bytes:
    """Planilha modelo com uma linha de exemplo e os valores válidos nas células."""
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame([TEMPLATE_LINHA]).to_excel(writer, index=False, sheet_name="Contratos")
    return buf.getvalue()
