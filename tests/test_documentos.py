# Versão: 1.0.0 (2025-10-02)
from datetime import date

import pytest

from models import Contrato, DocumentoContrato
from services.documentos_service import DocumentoError, enviar_documento, excluir_documento, rotulo_sequencia
from storage import StorageError


@pytest.fixture
def contrato(db_session):
    c = Contrato(
        contract_number="300/2024", modality="Pregão", object="Obra", contracted_company="Omega",
        contract_value=1, start_date=date(2024, 1, 1), end_date=date(2024, 12, 31),
        status="Vigente", process_number="P-300",
    )
    db_session.add(c)
    db_session.commit()
    return c


def test_rotulo_sequencia():
    assert rotulo_sequencia(0) == ""
    assert rotulo_sequencia(1) == "2º"
    assert rotulo_sequencia(2) == "3º"


def test_envio_numera_por_tipo(db_session, bucket, contrato):
    d1 = enviar_documento(db_session, bucket, contrato.id, "Termo Aditivo", "aditivo.pdf", b"1")
    d2 = enviar_documento(db_session, bucket, contrato.id, "Termo Aditivo", "aditivo2.pdf", b"22")
    d3 = enviar_documento(db_session, bucket, contrato.id, "Portaria", "portaria.PDF", b"333")

    assert [d1.document_number, d2.document_number, d3.document_number] == ["", "2º", ""]
    assert d1.file_path.startswith(f"{contrato.id}/") and d1.file_path.endswith(".pdf")
    assert d1.file_path != d2.file_path
    assert d3.file_path.endswith(".pdf")
    assert d2.file_size == 2
    assert bucket.exists(d2.file_path)


def test_tipo_invalido(db_session, bucket, contrato):
    with pytest.raises(DocumentoError):
        enviar_documento(db_session, bucket, contrato.id, "Nota Fiscal", "nf.pdf", b"x")
    assert db_session.query(DocumentoContrato).count() == 0


def test_excluir_remove_arquivo_e_registro(db_session, bucket, contrato):
    doc = enviar_documento(db_session, bucket, contrato.id, "Contrato", "c.pdf", b"abc")
    chave = doc.file_path
    excluir_documento(db_session, bucket, doc.id)
    assert not bucket.exists(chave)
    assert db_session.query(DocumentoContrato).count() == 0


def test_bucket_recusa_sobrescrita_e_caminho_externo(bucket):
    bucket.upload("1/a.pdf", b"x")
    with pytest.raises(StorageError):
        bucket.upload("1/a.pdf", b"y")
    with pytest.raises(StorageError):
        bucket.upload("../fora.txt", b"z")
    assert bucket.remove(["1/a.pdf", "1/nao-existe.pdf"]) == ["1/a.pdf"]
