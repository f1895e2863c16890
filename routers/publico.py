# routers/publico.py — v1.1.0 (02/10/2025)
# Consulta pública (sem login): lista com filtros, detalhe do contrato e
# download dos documentos. Aditivos/apostilamentos em ordem de criação com
# rótulo sequencial ("1º Aditivo", "2º Apostilamento"...).

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse, HTMLResponse
from jinja2 import TemplateNotFound
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from database import get_db
from models import Aditivo, Apostilamento, Contrato, DocumentoContrato, Fiscal
from schemas import (
    AditivoOut, ApostilamentoOut, ContratoDetalheOut, ContratoOut, DocumentoOut, FiscalOut,
)
from storage import Bucket, StorageError, get_bucket
from utils.versioning import set_version_header, version

router = APIRouter(tags=["Consulta pública"], dependencies=[Depends(set_version_header)])


# ----------------- formatação -----------------
def fmt_brl(v) -> str:
    """1234.56 -> 'R$ 1.234,56'"""
    try:
        n = float(v or 0)
    except (TypeError, ValueError):
        n = 0.0
    s = f"{abs(n):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"-R$ {s}" if n < 0 else f"R$ {s}"


def fmt_data(v) -> str:
    if v is None or v == "":
        return "-"
    if isinstance(v, datetime):
        v = v.date()
    if isinstance(v, date):
        return v.strftime("%d/%m/%Y")
    try:
        return datetime.strptime(str(v)[:10], "%Y-%m-%d").strftime("%d/%m/%Y")
    except ValueError:
        return str(v)


def rotular(itens: List[Dict[str, Any]], nome: str) -> List[Dict[str, Any]]:
    for i, item in enumerate(itens, start=1):
        item["rotulo"] = f"{i}º {nome}"
    return itens


# ----------------- consultas -----------------
def ilike_ci(column, term: str):
    term = f"%{(term or '').strip().lower()}%"
    return func.lower(column).like(term)


def listar_contratos(
    db: Session,
    busca: Optional[str] = None,
    status: Optional[str] = None,
    modalidade: Optional[str] = None,
    inicio: Optional[date] = None,
) -> List[Contrato]:
    q = db.query(Contrato)
    if busca and busca.strip():
        q = q.filter(or_(ilike_ci(Contrato.object, busca), ilike_ci(Contrato.contracted_company, busca)))
    if status:
        q = q.filter(Contrato.status == status)
    if modalidade:
        q = q.filter(Contrato.modality == modalidade)
    if inicio:
        q = q.filter(Contrato.start_date >= inicio)
    return q.order_by(Contrato.created_at.desc(), Contrato.id.desc()).all()


def detalhe_contrato(db: Session, contrato_id: int) -> ContratoDetalheOut:
    c = db.get(Contrato, contrato_id)
    if c is None:
        raise HTTPException(status_code=404, detail="Contrato não encontrado")

    aditivos = [
        AditivoOut.model_validate(a).model_dump()
        for a in db.query(Aditivo).filter(Aditivo.contract_id == c.id)
        .order_by(Aditivo.created_at.asc(), Aditivo.id.asc())
    ]
    apostilamentos = [
        ApostilamentoOut.model_validate(a).model_dump()
        for a in db.query(Apostilamento).filter(Apostilamento.contract_id == c.id)
        .order_by(Apostilamento.created_at.asc(), Apostilamento.id.asc())
    ]
    fiscais = db.query(Fiscal).filter(Fiscal.contract_id == c.id).order_by(Fiscal.created_at.asc(), Fiscal.id.asc())
    documentos = (
        db.query(DocumentoContrato)
        .filter(DocumentoContrato.contract_id == c.id)
        .order_by(DocumentoContrato.uploaded_at.desc(), DocumentoContrato.id.desc())
    )
    return ContratoDetalheOut(
        contrato=ContratoOut.model_validate(c),
        aditivos=rotular(aditivos, "Aditivo"),
        apostilamentos=rotular(apostilamentos, "Apostilamento"),
        fiscais=[FiscalOut.model_validate(f) for f in fiscais],
        documentos=[DocumentoOut.model_validate(d) for d in documentos],
    )


def _render(request: Request, nome: str, ctx: Dict[str, Any], fallback: str):
    try:
        return request.app.state.templates.TemplateResponse(request, nome, ctx)
    except TemplateNotFound:
        return HTMLResponse(fallback)


# ----------------- rotas -----------------
@router.get("/", response_class=HTMLResponse)
@version("1.1.0")
def pagina_contratos(
    request: Request,
    busca: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    modalidade: Optional[str] = Query(default=None),
    inicio: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
):
    contratos = listar_contratos(db, busca, status, modalidade, inicio)
    ctx = {
        "contratos": contratos,
        "filtros": {"busca": busca or "", "status": status or "", "modalidade": modalidade or "",
                    "inicio": inicio.isoformat() if inicio else ""},
    }
    linhas = "".join(
        f"<li><a href='/contratos/{c.id}'>{c.contract_number}</a> — {c.contracted_company}</li>" for c in contratos
    )
    return _render(request, "contratos.html", ctx, f"<h3>Contratos</h3><ul>{linhas}</ul>")


@router.get("/api/contratos")
@version("1.1.0")
def api_contratos(
    busca: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    modalidade: Optional[str] = Query(default=None),
    inicio: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
):
    contratos = listar_contratos(db, busca, status, modalidade, inicio)
    return {"total": len(contratos), "items": [ContratoOut.model_validate(c).model_dump() for c in contratos]}


@router.get("/contratos/{contrato_id}", response_class=HTMLResponse)
def pagina_detalhe(request: Request, contrato_id: int, db: Session = Depends(get_db)):
    det = detalhe_contrato(db, contrato_id)
    c = det.contrato
    return _render(
        request, "contrato_detalhe.html", {"det": det, "c": c},
        f"<h3>Contrato {c.contract_number}</h3><p>{c.object}</p>",
    )


@router.get("/api/contratos/{contrato_id}")
@version("1.1.0")
def api_detalhe(contrato_id: int, db: Session = Depends(get_db)):
    return detalhe_contrato(db, contrato_id).model_dump()


@router.get("/documentos/{documento_id}/arquivo")
def baixar_documento(documento_id: int, db: Session = Depends(get_db), bucket: Bucket = Depends(get_bucket)):
    doc = db.get(DocumentoContrato, documento_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Documento não encontrado")
    try:
        caminho = bucket.path_of(doc.file_path)
    except StorageError:
        raise HTTPException(status_code=404, detail="Arquivo não encontrado no armazenamento")
    return FileResponse(caminho, filename=doc.file_name)
