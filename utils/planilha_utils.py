# utils/planilha_utils.py
# Versão: 1.3.0 (2025-10-09)
# Helpers puros da importação de planilhas de contratos:
# - normalizar_enum / normalizar_modalidade / normalizar_status
# - parse_data_planilha: serial do Excel, datas em texto, date/datetime
# - parse_moeda: "R$ 1.234,56" -> 1234.56 (não numérico -> 0.0)
# - validar_linha: campos obrigatórios após a coerção
# - pick: primeira coluna preenchida entre rótulo PT e fallback EN

from __future__ import annotations

import math
import re
from datetime import datetime, date, timedelta
from typing import Any, Dict, Iterable, Optional

from models import MODALIDADES, STATUS_CONTRATO

MODALIDADE_PADRAO = "Pregão"
STATUS_PADRAO = "Vigente"

# 25569 = dias entre 1899-12-30 (época das planilhas) e 1970-01-01
_EPOCA_UNIX = datetime(1970, 1, 1)
_OFFSET_SERIAL = 25569
_SERIAL_RE = re.compile(r"^\d+(\.\d+)?$")

_DATE_FMTS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
)

CAMPOS_OBRIGATORIOS = ("object", "process_number", "start_date", "end_date", "contracted_company")


# ---------- valores vazios ----------

def is_blank(v: Any) -> bool:
    """None, NaN (célula vazia no pandas) ou string só com espaços."""
    if v is None:
        return True
    if isinstance(v, float) and math.isnan(v):
        return True
    if isinstance(v, str) and not v.strip():
        return True
    return False


def pick(row: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        v = row.get(k)
        if not is_blank(v):
            return v
    return None


def as_text(v: Any) -> Optional[str]:
    if is_blank(v):
        return None
    if isinstance(v, float) and v.is_integer():
        # número lido como float pelo pandas (ex.: 2024.0)
        return str(int(v))
    return str(v).strip()


# ---------- enums ----------

def normalizar_enum(valor: Any, validos: Iterable[str]) -> Optional[str]:
    """
    Devolve o rótulo canônico cuja forma trim+casefold é igual à do valor.
    Sem correspondência exata -> None (não tenta adivinhar).
    """
    if is_blank(valor):
        return None
    alvo = str(valor).strip().casefold()
    for rotulo in validos:
        if rotulo.strip().casefold() == alvo:
            return rotulo
    return None


def normalizar_modalidade(valor: Any) -> str:
    return normalizar_enum(valor, MODALIDADES) or MODALIDADE_PADRAO


def normalizar_status(valor: Any) -> str:
    return normalizar_enum(valor, STATUS_CONTRATO) or STATUS_PADRAO


# ---------- datas ----------

def _serial_para_iso(serial: Any) -> str:
    # fora do intervalo de datas (ex.: 20240115 digitado como aaaammdd) volta cru
    try:
        ms = (float(serial) - _OFFSET_SERIAL) * 86400 * 1000
        return (_EPOCA_UNIX + timedelta(milliseconds=ms)).date().isoformat()
    except (OverflowError, ValueError):
        return as_text(serial) or str(serial)


def parse_data_planilha(valor: Any) -> str:
    """
    Converte a célula de data para 'YYYY-MM-DD'.
      - date/datetime (inclui pandas.Timestamp) -> ISO
      - int/float -> serial do Excel
      - str só com dígitos (CSV) -> serial do Excel
      - str reconhecível -> ISO; str irreconhecível volta como veio
      - vazio -> ''
    """
    if is_blank(valor):
        return ""
    if isinstance(valor, datetime):
        return valor.date().isoformat()
    if isinstance(valor, date):
        return valor.isoformat()
    if isinstance(valor, bool):
        return str(valor)
    if isinstance(valor, (int, float)):
        return _serial_para_iso(valor)

    text = str(valor).strip()
    if _SERIAL_RE.match(text):
        return _serial_para_iso(text)
    for fmt in _DATE_FMTS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            pass
    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        return text


def iso_para_date(valor: Any) -> Optional[date]:
    """'YYYY-MM-DD' -> date; levanta ValueError se não for ISO."""
    if is_blank(valor):
        return None
    if isinstance(valor, date):
        return valor
    return date.fromisoformat(str(valor).strip())


# ---------- moeda ----------

def parse_moeda(valor: Any) -> float:
    """
    Mantém só dígitos, vírgula e ponto; vírgula vira separador decimal.
    Quando aparecem ponto e vírgula, o último dos dois é o decimal e o outro
    é milhar: "R$ 1.234,56" -> 1234.56, "1,234.56" -> 1234.56.
    Resultado não numérico -> 0.0.
    """
    if is_blank(valor):
        return 0.0
    if isinstance(valor, bool):
        return 0.0
    if isinstance(valor, (int, float)):
        # mesma limpeza do texto: sinal descartado, não finito -> 0.0
        return abs(float(valor)) if math.isfinite(valor) else 0.0

    s = re.sub(r"[^\d.,]", "", str(valor))
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", "") if s.count(",") > 1 else s.replace(",", ".")
    elif s.count(".") > 1:
        s = s.replace(".", "")

    try:
        v = float(s)
    except ValueError:
        return 0.0
    return 0.0 if math.isnan(v) else v


# ---------- booleano "Sim/Não" ----------

def parse_sim_nao(valor: Any) -> bool:
    if valor is True:
        return True
    if isinstance(valor, str):
        return valor.strip().casefold() in {"sim", "true"}
    return False


# ---------- validação de linha ----------

def validar_linha(linha: Dict[str, Any]) -> bool:
    """Aceita a linha se tem número do contrato e todos os obrigatórios."""
    if is_blank(linha.get("contract_number")):
        return False
    return all(not is_blank(linha.get(c)) for c in CAMPOS_OBRIGATORIOS)
