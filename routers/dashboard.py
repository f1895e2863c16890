# Módulo: Dashboard
# Versão: 2.0.0
# Data: 2025-10-02
#
# KPIs de vencimento do console administrativo:
#   • vencendo_90 / vencendo_60 / vencendo_45: contratos "Vigente" com
#     end_date entre hoje e hoje+N dias (inclusive)
#   • totais por status e valor total contratado
#   • lista dos que vencem em até 90 dias (ordem de vencimento)

from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse
from jinja2 import TemplateNotFound
from sqlalchemy import func
from sqlalchemy.orm import Session

from database import get_db
from models import Contrato
from routers.auth import exigir_admin
from schemas import ContratoOut
from utils.versioning import version, set_version_header

JANELAS = (90, 60, 45)

router = APIRouter(
    prefix="/admin/dashboard",
    tags=["Dashboard"],
    dependencies=[Depends(exigir_admin), Depends(set_version_header)],
)


# ----------------- utilitários -----------------
def _vigentes_ate(db: Session, hoje: date, dias: int):
    return db.query(Contrato).filter(
        Contrato.status == "Vigente",
        Contrato.end_date >= hoje,
        Contrato.end_date <= hoje + timedelta(days=dias),
    )


def resumo(db: Session, hoje: Optional[date] = None) -> dict:
    hoje = hoje or date.today()
    out = {"hoje": hoje.isoformat()}
    for dias in JANELAS:
        out[f"vencendo_{dias}"] = _vigentes_ate(db, hoje, dias).count()

    por_status = dict(
        db.query(Contrato.status, func.count(Contrato.id)).group_by(Contrato.status).all()
    )
    out["total_contratos"] = sum(por_status.values())
    out["por_status"] = por_status
    out["valor_total"] = float(db.query(func.coalesce(func.sum(Contrato.contract_value), 0.0)).scalar() or 0.0)

    vencendo = _vigentes_ate(db, hoje, JANELAS[0]).order_by(Contrato.end_date.asc(), Contrato.id.asc()).all()
    out["vencendo"] = [
        dict(ContratoOut.model_validate(c).model_dump(), dias_restantes=(c.end_date - hoje).days)
        for c in vencendo
    ]
    return out


# ----------------- rotas -----------------
@router.get("/resumo")
@version("2.0.0")
def get_resumo(hoje: Optional[date] = Query(default=None), db: Session = Depends(get_db)):
    return resumo(db, hoje)


@router.get("", response_class=HTMLResponse)
def dashboard_view(request: Request, db: Session = Depends(get_db)):
    dados = resumo(db)
    try:
        return request.app.state.templates.TemplateResponse(request, "dashboard.html", {"r": dados})
    except TemplateNotFound:
        itens = "".join(
            f"<li>{c['contract_number']} — vence em {c['dias_restantes']} dia(s)</li>" for c in dados["vencendo"]
        )
        return HTMLResponse(
            f"<h3>Vencimentos</h3><p>90 dias: {dados['vencendo_90']} | 60 dias: {dados['vencendo_60']} | "
            f"45 dias: {dados['vencendo_45']}</p><ul>{itens}</ul>"
        )
