# routers/admin_contratos.py — v2.0.0 (02/10/2025)
# Console administrativo (papel "admin"):
#   - lista/exclusão de contratos (exclusão em cascata feita pelo banco)
#   - sessões de formulário (/admin/formularios/...): uma por diálogo aberto,
#     espelhando as operações de FormularioContrato
#   - importação por planilha e download do modelo
# Respostas de operação: {"ok": bool, "mensagem": str, ...}

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, Response
from jinja2 import TemplateNotFound
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from models import Contrato, MODALIDADES, STATUS_CONTRATO, TIPOS_ADITIVO, TIPOS_APOSTILAMENTO, TIPOS_DOCUMENTO
from routers.auth import exigir_admin
from schemas import AditivoIn, ApostilamentoIn, ContratoIn, ContratoOut, FiscalIn, mensagem_validacao
from security import SessaoUsuario
from services.formulario_service import (
    FormularioContrato, FormularioError, NumeroContratoDuplicadoError, RegistroFormularios, SalvamentoError,
)
from services.importacao_service import (
    ContratoDuplicadoError, FiscaisImportacaoError, ImportacaoError, gerar_template, importar_planilha,
)
from storage import Bucket, get_bucket
from utils.versioning import set_version_header, version

log = logging.getLogger("uvicorn.error")

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(exigir_admin), Depends(set_version_header)],
)

formularios = RegistroFormularios()


def get_registro() -> RegistroFormularios:
    return formularios


def _erro(mensagem: str, status_code: int = 400, **extra) -> JSONResponse:
    return JSONResponse({"ok": False, "mensagem": mensagem, **extra}, status_code=status_code)


def _validar(schema, payload: Dict[str, Any]):
    """(modelo, None) ou (None, resposta de erro)."""
    try:
        return schema.model_validate(payload or {}), None
    except ValidationError as e:
        return None, _erro(mensagem_validacao(e), 422)


def _form(registro: RegistroFormularios, form_id: str) -> FormularioContrato:
    try:
        return registro.obter(form_id)
    except FormularioError:
        raise HTTPException(status_code=404, detail="Formulário não encontrado")


# ---------------------------------------------------------------------------
# contratos
# ---------------------------------------------------------------------------

@router.get("/contratos", response_class=HTMLResponse)
def pagina_admin(request: Request, db: Session = Depends(get_db),
                 sessao: SessaoUsuario = Depends(exigir_admin)):
    contratos = db.query(Contrato).order_by(Contrato.created_at.desc(), Contrato.id.desc()).all()
    ctx = {
        "contratos": contratos,
        "usuario": sessao.username,
        "modalidades": MODALIDADES,
        "status_lista": STATUS_CONTRATO,
        "tipos_aditivo": TIPOS_ADITIVO,
        "tipos_apostilamento": TIPOS_APOSTILAMENTO,
        "tipos_documento": TIPOS_DOCUMENTO,
    }
    try:
        return request.app.state.templates.TemplateResponse(request, "admin_contratos.html", ctx)
    except TemplateNotFound:
        linhas = "".join(f"<li>{c.contract_number} — {c.contracted_company}</li>" for c in contratos)
        return HTMLResponse(f"<h3>Gerenciar contratos</h3><ul>{linhas}</ul>")


@router.get("/api/contratos")
@version("2.0.0")
def api_admin_contratos(db: Session = Depends(get_db)):
    contratos = db.query(Contrato).order_by(Contrato.created_at.desc(), Contrato.id.desc()).all()
    return {"total": len(contratos), "items": [ContratoOut.model_validate(c).model_dump() for c in contratos]}


@router.delete("/contratos/{contrato_id}")
def excluir_contrato(contrato_id: int, db: Session = Depends(get_db)):
    try:
        # delete em massa: aditivos/apostilamentos/fiscais/documentos saem pelo ON DELETE CASCADE
        n = db.query(Contrato).filter(Contrato.id == contrato_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.exception("[admin] erro ao excluir contrato %s", contrato_id)
        return _erro(f"Erro ao excluir contrato: {e}", 500)
    if not n:
        return _erro("Contrato não encontrado", 404)
    log.info("[admin] contrato %s excluído", contrato_id)
    return {"ok": True, "mensagem": "Contrato excluído com sucesso!"}


# ---------------------------------------------------------------------------
# formulário (sessões)
# ---------------------------------------------------------------------------

@router.post("/formularios")
def abrir_formulario(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    db: Session = Depends(get_db),
    registro: RegistroFormularios = Depends(get_registro),
):
    contrato_id = (payload or {}).get("contrato_id")
    if contrato_id is not None:
        try:
            contrato_id = int(contrato_id)
        except (TypeError, ValueError):
            return _erro("contrato_id inválido", 422)
    try:
        form = registro.abrir(db, contrato_id)
    except FormularioError as e:
        return _erro(str(e), 404)
    return {"ok": True, "formulario": form.as_dict()}


@router.get("/formularios/{form_id}")
def ver_formulario(form_id: str, registro: RegistroFormularios = Depends(get_registro)):
    return {"ok": True, "formulario": _form(registro, form_id).as_dict()}


@router.delete("/formularios/{form_id}")
def cancelar_formulario(form_id: str, registro: RegistroFormularios = Depends(get_registro)):
    # cancelar descarta a lista local; o que já foi gravado na hora (fiscais/documentos) permanece
    registro.fechar(form_id)
    return {"ok": True}


@router.post("/formularios/{form_id}/aditivos")
def adicionar_aditivo(form_id: str, payload: Dict[str, Any] = Body(...),
                      registro: RegistroFormularios = Depends(get_registro)):
    form = _form(registro, form_id)
    aditivo, erro = _validar(AditivoIn, payload)
    if erro:
        return erro
    try:
        indice = form.adicionar_aditivo(aditivo)
    except FormularioError as e:
        return _erro(str(e))
    return {"ok": True, "indice": indice, "formulario": form.as_dict()}


@router.delete("/formularios/{form_id}/aditivos/{indice}")
def remover_aditivo(form_id: str, indice: int, registro: RegistroFormularios = Depends(get_registro)):
    form = _form(registro, form_id)
    try:
        form.remover_aditivo(indice)
    except FormularioError as e:
        return _erro(str(e), 404)
    return {"ok": True, "formulario": form.as_dict()}


@router.post("/formularios/{form_id}/apostilamentos")
def adicionar_apostilamento(form_id: str, payload: Dict[str, Any] = Body(...),
                            registro: RegistroFormularios = Depends(get_registro)):
    form = _form(registro, form_id)
    apost, erro = _validar(ApostilamentoIn, payload)
    if erro:
        return erro
    try:
        indice = form.adicionar_apostilamento(apost)
    except FormularioError as e:
        return _erro(str(e))
    return {"ok": True, "indice": indice, "formulario": form.as_dict()}


@router.delete("/formularios/{form_id}/apostilamentos/{indice}")
def remover_apostilamento(form_id: str, indice: int, registro: RegistroFormularios = Depends(get_registro)):
    form = _form(registro, form_id)
    try:
        form.remover_apostilamento(indice)
    except FormularioError as e:
        return _erro(str(e), 404)
    return {"ok": True, "formulario": form.as_dict()}


@router.post("/formularios/{form_id}/fiscais")
def adicionar_fiscal(form_id: str, payload: Dict[str, Any] = Body(...), db: Session = Depends(get_db),
                     registro: RegistroFormularios = Depends(get_registro)):
    form = _form(registro, form_id)
    fiscal, erro = _validar(FiscalIn, payload)
    if erro:
        return erro
    try:
        item = form.adicionar_fiscal(fiscal, db=db)
    except FormularioError as e:
        return _erro(str(e))
    mensagem = "Fiscal adicionado à lista" if form.novo else "Fiscal adicionado com sucesso!"
    return {"ok": True, "mensagem": mensagem, "fiscal": item, "formulario": form.as_dict()}


@router.delete("/formularios/{form_id}/fiscais/{fiscal_id}")
def remover_fiscal(form_id: str, fiscal_id: str, db: Session = Depends(get_db),
                   registro: RegistroFormularios = Depends(get_registro)):
    form = _form(registro, form_id)
    try:
        form.remover_fiscal(fiscal_id, db=db)
    except FormularioError as e:
        return _erro(str(e))
    return {"ok": True, "mensagem": "Fiscal removido", "formulario": form.as_dict()}


@router.post("/formularios/{form_id}/documentos")
def enviar_documento(
    form_id: str,
    tipo: str = Form(...),
    arquivo: UploadFile = File(...),
    db: Session = Depends(get_db),
    bucket: Bucket = Depends(get_bucket),
    registro: RegistroFormularios = Depends(get_registro),
    sessao: SessaoUsuario = Depends(exigir_admin),
):
    form = _form(registro, form_id)
    try:
        doc = form.enviar_documento(db, bucket, tipo, arquivo.filename or "arquivo", arquivo.file.read(),
                                    user_id=sessao.user_id)
    except FormularioError as e:
        return _erro(str(e))
    return {"ok": True, "mensagem": "Documento enviado com sucesso!", "documento": doc}


@router.delete("/formularios/{form_id}/documentos/{documento_id}")
def excluir_documento(form_id: str, documento_id: int, db: Session = Depends(get_db),
                      bucket: Bucket = Depends(get_bucket),
                      registro: RegistroFormularios = Depends(get_registro)):
    form = _form(registro, form_id)
    try:
        form.excluir_documento(db, bucket, documento_id)
    except FormularioError as e:
        return _erro(str(e))
    return {"ok": True, "mensagem": "Documento excluído com sucesso!"}


@router.post("/formularios/{form_id}/salvar")
def salvar_formulario(form_id: str, payload: Dict[str, Any] = Body(...), db: Session = Depends(get_db),
                      registro: RegistroFormularios = Depends(get_registro)):
    form = _form(registro, form_id)
    dados, erro = _validar(ContratoIn, payload)
    if erro:
        return erro
    try:
        res = form.salvar(db, dados)
    except FormularioError as e:
        return _erro(str(e))
    except NumeroContratoDuplicadoError as e:
        return _erro(str(e), 409, duplicado=True)
    except SalvamentoError as e:
        return _erro(str(e), 500)

    registro.fechar(form_id)
    falhas = [{"tipo": f.tipo, "indice": f.indice, "erro": f.erro} for f in res.falhas]
    return {
        "ok": True,
        "mensagem": res.mensagem,
        "contrato_id": res.contrato_id,
        "criado": res.criado,
        "aditivos": res.contar("aditivo"),
        "apostilamentos": res.contar("apostilamento"),
        "fiscais": res.contar("fiscal"),
        "falhas": falhas,
    }


# ---------------------------------------------------------------------------
# importação
# ---------------------------------------------------------------------------

@router.post("/importar")
def importar(arquivo: UploadFile = File(...), db: Session = Depends(get_db)):
    nome = arquivo.filename or "planilha"
    try:
        res = importar_planilha(db, arquivo.file.read(), nome)
    except ContratoDuplicadoError as e:
        log.warning("[importacao] %s: número de contrato duplicado (%s)", nome, e.detalhe)
        return _erro(str(e), 409, duplicado=True)
    except FiscaisImportacaoError as e:
        log.error("[importacao] %s: falha no lote de fiscais: %s", nome, e.detalhe)
        return _erro(str(e), 500, importados=e.importados)
    except ImportacaoError as e:
        log.warning("[importacao] %s: %s", nome, e)
        return _erro(str(e), 400)
    return {"ok": True, **res.as_dict()}


@router.get("/importar/template")
def baixar_template():
    return Response(
        content=gerar_template(),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="modelo_importacao_contratos.xlsx"'},
    )
