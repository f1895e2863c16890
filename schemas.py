# schemas.py — v2.0.0 (02/10/2025)
# Validação de formulário (camada de UI) e saídas JSON.
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from models import (
    MODALIDADES, STATUS_CONTRATO, TIPOS_ADITIVO, TIPOS_APOSTILAMENTO, TIPOS_DOCUMENTO,
    ADITIVO_VALOR, ADITIVO_PRAZO, ADITIVO_VALOR_PRAZO,
    APOST_REAJUSTE_INDICE, APOST_REPACTUACAO, APOST_PRORROGACAO_EXECUCAO,
)

_EMAIL_RE = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


def _check_enum(v: str, validos, campo: str) -> str:
    if v not in validos:
        raise ValueError(f"{campo} inválido: {v!r}")
    return v


def mensagem_validacao(exc: ValidationError) -> str:
    """Primeira mensagem legível de um ValidationError (sem o prefixo do pydantic)."""
    erros = exc.errors()
    if not erros:
        return "Dados inválidos"
    e = erros[0]
    msg = str(e.get("msg") or "Dados inválidos")
    if msg.startswith("Value error, "):
        return msg[len("Value error, "):]
    campo = ".".join(str(p) for p in e.get("loc", ()) if p != "body")
    return f"{campo}: {msg}" if campo else msg


# ---------------------------------------------------------------------------
# Entradas
# ---------------------------------------------------------------------------

class ContratoIn(BaseModel):
    contract_number: str = Field(min_length=1)
    gms_number: Optional[str] = None
    modality: str
    object: str = Field(min_length=1)
    contracted_company: str = Field(min_length=1)
    contract_value: float = Field(ge=0)
    start_date: date
    end_date: date
    status: str = "Vigente"
    process_number: str = Field(min_length=1)
    has_extension_clause: bool = False
    manager_name: Optional[str] = None
    manager_email: Optional[str] = Field(default=None, pattern=_EMAIL_RE)
    manager_nomination: Optional[str] = None

    @field_validator("contract_number", "object", "contracted_company", "process_number", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("gms_number", "manager_name", "manager_email", "manager_nomination", mode="before")
    @classmethod
    def _opcionais(cls, v):
        return _blank_to_none(v)

    @field_validator("modality")
    @classmethod
    def _modalidade(cls, v):
        return _check_enum(v, MODALIDADES, "modalidade")

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        return _check_enum(v, STATUS_CONTRATO, "status")

    @model_validator(mode="after")
    def _vigencia(self):
        if self.end_date < self.start_date:
            raise ValueError("Data de fim anterior à data de início")
        return self


class AditivoIn(BaseModel):
    amendment_type: str = ADITIVO_VALOR
    new_value: Optional[float] = Field(default=None, ge=0)
    new_end_date: Optional[date] = None
    process_number: str = ""

    @field_validator("new_value", "new_end_date", mode="before")
    @classmethod
    def _vazio(cls, v):
        return _blank_to_none(v)

    @field_validator("amendment_type")
    @classmethod
    def _tipo(cls, v):
        return _check_enum(v, TIPOS_ADITIVO, "tipo de aditivo")

    @model_validator(mode="after")
    def _regras(self):
        self.process_number = (self.process_number or "").strip()
        if not self.process_number:
            raise ValueError("Número do processo é obrigatório")
        tipo = self.amendment_type
        if tipo in (ADITIVO_VALOR, ADITIVO_VALOR_PRAZO) and self.new_value is None:
            raise ValueError("Novo valor é obrigatório para aditivo de valor")
        if tipo in (ADITIVO_PRAZO, ADITIVO_VALOR_PRAZO) and self.new_end_date is None:
            raise ValueError("Nova data de fim é obrigatória para aditivo de prazo")
        # campos que não se aplicam ao tipo são descartados
        if tipo == ADITIVO_PRAZO:
            self.new_value = None
        if tipo == ADITIVO_VALOR:
            self.new_end_date = None
        return self


class ApostilamentoIn(BaseModel):
    endorsement_type: str = APOST_REAJUSTE_INDICE
    new_value: Optional[float] = Field(default=None, ge=0)
    new_execution_date: Optional[date] = None
    adjustment_index: Optional[str] = None
    process_number: str = ""
    description: Optional[str] = None

    @field_validator("new_value", "new_execution_date", "adjustment_index", "description", mode="before")
    @classmethod
    def _vazio(cls, v):
        return _blank_to_none(v)

    @field_validator("endorsement_type")
    @classmethod
    def _tipo(cls, v):
        return _check_enum(v, TIPOS_APOSTILAMENTO, "tipo de apostilamento")

    @model_validator(mode="after")
    def _regras(self):
        self.process_number = (self.process_number or "").strip()
        if not self.process_number:
            raise ValueError("Número do processo é obrigatório")
        tipo = self.endorsement_type
        if tipo not in (APOST_REAJUSTE_INDICE, APOST_REPACTUACAO):
            self.new_value = None
        if tipo != APOST_REAJUSTE_INDICE:
            self.adjustment_index = None
        if tipo != APOST_PRORROGACAO_EXECUCAO:
            self.new_execution_date = None
        return self


class FiscalIn(BaseModel):
    supervisor_name: str = ""
    supervisor_email: Optional[str] = None
    supervisor_nomination: Optional[str] = None

    @field_validator("supervisor_email", "supervisor_nomination", mode="before")
    @classmethod
    def _vazio(cls, v):
        return _blank_to_none(v)

    @field_validator("supervisor_name")
    @classmethod
    def _nome(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Nome do fiscal é obrigatório")
        return v


# ---------------------------------------------------------------------------
# Saídas
# ---------------------------------------------------------------------------

class ContratoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    contract_number: str
    gms_number: Optional[str] = None
    modality: str
    object: str
    contracted_company: str
    contract_value: float
    start_date: date
    end_date: date
    status: str
    process_number: str
    has_extension_clause: bool
    manager_name: Optional[str] = None
    manager_email: Optional[str] = None
    manager_nomination: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AditivoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    contract_id: int
    amendment_type: str
    new_value: Optional[float] = None
    new_end_date: Optional[date] = None
    process_number: str
    created_at: Optional[datetime] = None
    rotulo: Optional[str] = None


class ApostilamentoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    contract_id: int
    endorsement_type: str
    new_value: Optional[float] = None
    new_execution_date: Optional[date] = None
    adjustment_index: Optional[str] = None
    process_number: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    rotulo: Optional[str] = None


class FiscalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    contract_id: int
    supervisor_name: str
    supervisor_email: Optional[str] = None
    supervisor_nomination: Optional[str] = None


class DocumentoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    contract_id: int
    document_type: str
    file_name: str
    file_path: str
    file_size: int
    document_number: Optional[str] = None
    uploaded_at: Optional[datetime] = None

    @field_validator("document_type")
    @classmethod
    def _tipo(cls, v):
        return _check_enum(v, TIPOS_DOCUMENTO, "tipo de documento")


class ContratoDetalheOut(BaseModel):
    contrato: ContratoOut
    aditivos: List[AditivoOut] = []
    apostilamentos: List[ApostilamentoOut] = []
    fiscais: List[FiscalOut] = []
    documentos: List[DocumentoOut] = []
