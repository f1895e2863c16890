# models.py
# =====================================================================
# Registro de Contratos - Modelos SQLAlchemy
# Versão: 1.3.0
# Data: 02/10/2025
# Tabelas: contracts, contract_amendments, contract_endorsements,
#          contract_supervisors, contract_documents.
# Os filhos declaram ON DELETE CASCADE: excluir um contrato remove os
# dependentes no próprio banco (a aplicação não faz cascata).
# Compatível com SQLite (dev) e PostgreSQL (prod).
# =====================================================================

from __future__ import annotations
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, Boolean, Text, ForeignKey,
    CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from database import Base


# =========================
# Enumerações (rótulos canônicos)
# =========================
MODALIDADES = (
    "Pregão",
    "Dispensa",
    "Inexigibilidade",
    "Concorrência",
    "Tomada de Preços",
    "Credenciamento",
    "Adesão",
)
STATUS_CONTRATO = ("Vigente", "Rescindido", "Encerrado", "Prorrogado")

ADITIVO_VALOR = "Aditivo de Valor"
ADITIVO_PRAZO = "Aditivo de Prazo"
ADITIVO_VALOR_PRAZO = "Aditivo de Valor e Prazo"
TIPOS_ADITIVO = (ADITIVO_VALOR, ADITIVO_PRAZO, ADITIVO_VALOR_PRAZO)

APOST_PRORROGACAO_EXECUCAO = "Prorrogação de Prazo de Execução"
APOST_REAJUSTE_INDICE = "Reajuste por Índice"
APOST_REPACTUACAO = "Repactuação"
APOST_DOTACAO = "Alteração de Dotação Orçamentária"
TIPOS_APOSTILAMENTO = (
    APOST_PRORROGACAO_EXECUCAO,
    APOST_REAJUSTE_INDICE,
    APOST_REPACTUACAO,
    APOST_DOTACAO,
)

TIPOS_DOCUMENTO = (
    "Contrato",
    "Extrato de Publicação do Contrato",
    "Termo Aditivo",
    "Extrato de Publicação do Aditivo",
    "Apostilamento",
    "Portaria",
)


def _in_list(col: str, valores) -> str:
    itens = ",".join("'" + v.replace("'", "''") + "'" for v in valores)
    return f"{col} in ({itens})"


# =========================
# Contrato
# =========================
class Contrato(Base):
    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, index=True)

    contract_number = Column(String(120), nullable=False, unique=True)
    gms_number = Column(String(120), nullable=True)
    modality = Column(String(40), nullable=False)
    object = Column(Text, nullable=False)
    contracted_company = Column(String(255), nullable=False)
    contract_value = Column(Float, nullable=False, default=0.0)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="Vigente")
    process_number = Column(String(120), nullable=False)
    has_extension_clause = Column(Boolean, nullable=False, default=False)

    # Gestão
    manager_name = Column(String(255), nullable=True)
    manager_email = Column(String(255), nullable=True)
    manager_nomination = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    aditivos = relationship(
        "Aditivo", back_populates="contrato", passive_deletes=True,
        order_by=lambda: [Aditivo.created_at, Aditivo.id],
    )
    apostilamentos = relationship(
        "Apostilamento", back_populates="contrato", passive_deletes=True,
        order_by=lambda: [Apostilamento.created_at, Apostilamento.id],
    )
    fiscais = relationship(
        "Fiscal", back_populates="contrato", passive_deletes=True,
        order_by=lambda: [Fiscal.created_at, Fiscal.id],
    )
    documentos = relationship(
        "DocumentoContrato", back_populates="contrato", passive_deletes=True,
        order_by=lambda: DocumentoContrato.uploaded_at.desc(),
    )

    __table_args__ = (
        CheckConstraint(_in_list("status", STATUS_CONTRATO), name="ck_contracts_status"),
        CheckConstraint(_in_list("modality", MODALIDADES), name="ck_contracts_modality"),
        CheckConstraint("contract_value >= 0", name="ck_contracts_value"),
        Index("ix_contracts_status_end_date", "status", "end_date"),
        Index("ix_contracts_created_at", "created_at"),
    )


# =========================
# Aditivo (termo aditivo)
# =========================
class Aditivo(Base):
    __tablename__ = "contract_amendments"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False)
    amendment_type = Column(String(40), nullable=False)
    new_value = Column(Float, nullable=True)
    new_end_date = Column(Date, nullable=True)
    process_number = Column(String(120), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    contrato = relationship("Contrato", back_populates="aditivos")

    __table_args__ = (
        CheckConstraint(_in_list("amendment_type", TIPOS_ADITIVO), name="ck_amendments_type"),
        Index("ix_amendments_contract_created", "contract_id", "created_at"),
    )


# =========================
# Apostilamento
# =========================
class Apostilamento(Base):
    __tablename__ = "contract_endorsements"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False)
    endorsement_type = Column(String(60), nullable=False)
    new_value = Column(Float, nullable=True)
    new_execution_date = Column(Date, nullable=True)
    adjustment_index = Column(String(60), nullable=True)
    process_number = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    contrato = relationship("Contrato", back_populates="apostilamentos")

    __table_args__ = (
        CheckConstraint(_in_list("endorsement_type", TIPOS_APOSTILAMENTO), name="ck_endorsements_type"),
        Index("ix_endorsements_contract_created", "contract_id", "created_at"),
    )


# =========================
# Fiscal do contrato
# =========================
class Fiscal(Base):
    __tablename__ = "contract_supervisors"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False)
    supervisor_name = Column(String(255), nullable=False)
    supervisor_email = Column(String(255), nullable=True)
    supervisor_nomination = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    contrato = relationship("Contrato", back_populates="fiscais")

    __table_args__ = (
        Index("ix_supervisors_contract_id", "contract_id"),
    )


# =========================
# Documento anexado
# =========================
class DocumentoContrato(Base):
    __tablename__ = "contract_documents"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False)
    document_type = Column(String(60), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(512), nullable=False)   # chave no bucket
    file_size = Column(Integer, nullable=False, default=0)
    document_number = Column(String(16), nullable=True)  # "2º", "3º"... (vazio no 1º)
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    uploaded_by = Column(Integer, nullable=True)

    contrato = relationship("Contrato", back_populates="documentos")

    __table_args__ = (
        CheckConstraint(_in_list("document_type", TIPOS_DOCUMENTO), name="ck_documents_type"),
        Index("ix_documents_contract_type", "contract_id", "document_type"),
    )
