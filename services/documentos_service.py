# services/documentos_service.py
# Versão: 1.1.0 (2025-10-02)
# Upload/exclusão de documentos do contrato.
# Upload = duas chamadas independentes (bucket e depois tabela). Se a
# segunda falhar o arquivo fica órfão no bucket; apenas registramos em log.

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Contrato, DocumentoContrato, TIPOS_DOCUMENTO
from storage import Bucket, StorageError

log = logging.getLogger("uvicorn.error")


class DocumentoError(Exception):
    pass


def rotulo_sequencia(qtd_existentes: int) -> str:
    """1º documento do tipo fica sem rótulo; depois "2º", "3º"..."""
    n = int(qtd_existentes or 0) + 1
    return f"{n}º" if n > 1 else ""


def _chave(bucket: Bucket, contrato_id: int, nome_arquivo: str) -> str:
    ext = Path(nome_arquivo or "").suffix.lstrip(".").lower() or "bin"
    ts = int(time.time() * 1000)
    chave = f"{contrato_id}/{ts}.{ext}"
    while bucket.exists(chave):
        ts += 1
        chave = f"{contrato_id}/{ts}.{ext}"
    return chave


def enviar_documento(
    db: Session,
    bucket: Bucket,
    contrato_id: int,
    tipo: str,
    nome_arquivo: str,
    conteudo: bytes,
    user_id: Optional[int] = None,
) -> DocumentoContrato:
    if tipo not in TIPOS_DOCUMENTO:
        raise DocumentoError(f"Tipo de documento inválido: {tipo!r}")
    if not conteudo:
        raise DocumentoError("Arquivo vazio")
    if db.get(Contrato, contrato_id) is None:
        raise DocumentoError("Contrato não encontrado")

    existentes = (
        db.query(func.count(DocumentoContrato.id))
        .filter(DocumentoContrato.contract_id == contrato_id, DocumentoContrato.document_type == tipo)
        .scalar()
    )
    rotulo = rotulo_sequencia(existentes)

    chave = _chave(bucket, contrato_id, nome_arquivo)
    try:
        bucket.upload(chave, conteudo)
    except (StorageError, OSError) as e:
        raise DocumentoError(f"Erro ao enviar documento: {e}") from e

    doc = DocumentoContrato(
        contract_id=contrato_id,
        document_type=tipo,
        file_name=Path(nome_arquivo or "arquivo").name,
        file_path=chave,
        file_size=len(conteudo),
        document_number=rotulo,
        uploaded_by=user_id,
    )
    try:
        db.add(doc)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.warning("[documentos] arquivo órfão no bucket %s: %s (%s)", bucket.name, chave, e)
        raise DocumentoError("Erro ao enviar documento") from e

    log.info("[documentos] contrato %s: %s %s enviado (%s bytes)", contrato_id, rotulo, tipo, len(conteudo))
    return doc


def excluir_documento(db: Session, bucket: Bucket, documento_id: int, contrato_id: Optional[int] = None) -> None:
    doc = db.get(DocumentoContrato, documento_id)
    if doc is None or (contrato_id is not None and doc.contract_id != contrato_id):
        raise DocumentoError("Documento não encontrado")
    try:
        bucket.remove([doc.file_path])
        db.delete(doc)
        db.commit()
    except (StorageError, OSError, SQLAlchemyError) as e:
        db.rollback()
        raise DocumentoError("Erro ao excluir documento") from e
