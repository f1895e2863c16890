# services/formulario_service.py
# Versão: 2.2.0 (2025-10-09)
#
# Estado do formulário de contrato (abas Dados/Gestão/Aditivos/
# Apostilamentos/Documentos) e o salvamento em etapas.
#
# Regras:
# - Aditivos e apostilamentos ficam numa lista local ("staging") e só vão ao
#   banco no salvar(), tanto em contrato novo quanto em edição. Os que já
#   existiam no banco aparecem só para leitura e nunca são reenviados.
# - Fiscais: contrato novo -> lista local com id temporário (gravados no
#   salvar); contrato existente -> insert/delete direto no banco.
# - Documentos: só com contrato já salvo; gravação imediata.
# - salvar(): grava o contrato (insert ou update) e depois cada filho
#   separadamente. A falha de um filho não impede os demais; o resultado de
#   cada um volta em ResultadoSalvamento.filhos.
# - salvar() troca o estado para ENVIANDO sob trava: um segundo envio do mesmo
#   formulário (duplo clique) recebe FormularioError.
# - RegistroFormularios descarta formulários parados há mais de
#   FORM_TTL_SEGUNDOS (padrão 4h) sempre que abre um novo.

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import Aditivo, Apostilamento, Contrato, DocumentoContrato, Fiscal
from schemas import (
    AditivoIn, AditivoOut, ApostilamentoIn, ApostilamentoOut, ContratoIn, ContratoOut,
    DocumentoOut, FiscalIn, FiscalOut,
)
from services import documentos_service
from storage import Bucket
from utils.db_utils import violacao_unicidade

log = logging.getLogger("uvicorn.error")

FORM_TTL_SEGUNDOS = int(os.getenv("FORM_TTL_SEGUNDOS", str(4 * 3600)))


class EstadoFormulario(str, Enum):
    VAZIO = "vazio"
    STAGING = "staging"        # contrato novo, ainda sem id
    CARREGADO = "carregado"    # editando contrato existente
    ALTERADO = "alterado"      # filhos adicionados/removidos da lista local
    ENVIANDO = "enviando"
    CONCLUIDO = "concluido"


_ABERTOS = (EstadoFormulario.STAGING, EstadoFormulario.CARREGADO, EstadoFormulario.ALTERADO)


class FormularioError(Exception):
    pass


class SalvamentoError(Exception):
    pass


class NumeroContratoDuplicadoError(SalvamentoError):
    def __init__(self):
        super().__init__("Já existe um contrato com este número.")


@dataclass
class ResultadoFilho:
    tipo: str          # "aditivo" | "apostilamento" | "fiscal"
    indice: int
    ok: bool
    id: Optional[int] = None
    erro: Optional[str] = None


@dataclass
class ResultadoSalvamento:
    contrato_id: int
    criado: bool
    filhos: List[ResultadoFilho] = field(default_factory=list)

    @property
    def falhas(self) -> List[ResultadoFilho]:
        return [f for f in self.filhos if not f.ok]

    @property
    def mensagem(self) -> str:
        return "Contrato criado com sucesso!" if self.criado else "Contrato atualizado com sucesso!"

    def contar(self, tipo: str) -> int:
        return sum(1 for f in self.filhos if f.tipo == tipo and f.ok)


def _fiscal_dict(f: Fiscal) -> Dict[str, Any]:
    return FiscalOut.model_validate(f).model_dump()


class FormularioContrato:
    """Sessão de um formulário aberto (novo contrato ou edição)."""

    def __init__(self, form_id: Optional[str] = None):
        self.id = form_id or uuid4().hex
        self.estado = EstadoFormulario.VAZIO
        self._trava = threading.Lock()
        self._limpar()

    def _limpar(self) -> None:
        self.contrato_id: Optional[int] = None
        self.contrato: Optional[Dict[str, Any]] = None
        self.aditivos_existentes: List[Dict[str, Any]] = []
        self.apostilamentos_existentes: List[Dict[str, Any]] = []
        self.aditivos: List[AditivoIn] = []
        self.apostilamentos: List[ApostilamentoIn] = []
        self.fiscais: List[Dict[str, Any]] = []
        self.documentos: List[Dict[str, Any]] = []

    @property
    def novo(self) -> bool:
        return self.contrato_id is None

    def _exigir_aberto(self) -> None:
        if self.estado not in _ABERTOS:
            raise FormularioError(f"Formulário não está aberto (estado: {self.estado.value})")

    # ------------------------------------------------------------------
    # abertura
    # ------------------------------------------------------------------

    def abrir_novo(self) -> "FormularioContrato":
        self._limpar()
        self.estado = EstadoFormulario.STAGING
        return self

    def abrir_existente(self, db: Session, contrato_id: int) -> "FormularioContrato":
        c = db.get(Contrato, contrato_id)
        if c is None:
            raise FormularioError("Contrato não encontrado")
        self._limpar()
        self.contrato_id = c.id
        self.contrato = ContratoOut.model_validate(c).model_dump()
        self.aditivos_existentes = [
            AditivoOut.model_validate(a).model_dump()
            for a in db.query(Aditivo).filter(Aditivo.contract_id == c.id)
            .order_by(Aditivo.created_at.asc(), Aditivo.id.asc())
        ]
        self.apostilamentos_existentes = [
            ApostilamentoOut.model_validate(a).model_dump()
            for a in db.query(Apostilamento).filter(Apostilamento.contract_id == c.id)
            .order_by(Apostilamento.created_at.asc(), Apostilamento.id.asc())
        ]
        self.fiscais = [
            _fiscal_dict(f)
            for f in db.query(Fiscal).filter(Fiscal.contract_id == c.id)
            .order_by(Fiscal.created_at.desc(), Fiscal.id.desc())
        ]
        self.documentos = [
            DocumentoOut.model_validate(d).model_dump()
            for d in db.query(DocumentoContrato).filter(DocumentoContrato.contract_id == c.id)
            .order_by(DocumentoContrato.uploaded_at.desc(), DocumentoContrato.id.desc())
        ]
        self.estado = EstadoFormulario.CARREGADO
        return self

    # ------------------------------------------------------------------
    # aditivos / apostilamentos (persistência adiada)
    # ------------------------------------------------------------------

    def adicionar_aditivo(self, aditivo: AditivoIn) -> int:
        self._exigir_aberto()
        self.aditivos.append(aditivo)
        self.estado = EstadoFormulario.ALTERADO
        return len(self.aditivos) - 1

    def remover_aditivo(self, indice: int) -> None:
        self._exigir_aberto()
        if not 0 <= indice < len(self.aditivos):
            raise FormularioError("Aditivo não encontrado na lista")
        del self.aditivos[indice]
        self.estado = EstadoFormulario.ALTERADO

    def adicionar_apostilamento(self, apostilamento: ApostilamentoIn) -> int:
        self._exigir_aberto()
        self.apostilamentos.append(apostilamento)
        self.estado = EstadoFormulario.ALTERADO
        return len(self.apostilamentos) - 1

    def remover_apostilamento(self, indice: int) -> None:
        self._exigir_aberto()
        if not 0 <= indice < len(self.apostilamentos):
            raise FormularioError("Apostilamento não encontrado na lista")
        del self.apostilamentos[indice]
        self.estado = EstadoFormulario.ALTERADO

    # ------------------------------------------------------------------
    # fiscais (local no contrato novo, imediato no existente)
    # ------------------------------------------------------------------

    def adicionar_fiscal(self, fiscal: FiscalIn, db: Optional[Session] = None) -> Dict[str, Any]:
        self._exigir_aberto()
        if self.novo:
            item = {
                "id": f"tmp-{int(time.time() * 1000)}-{len(self.fiscais)}",
                "contract_id": None,
                **fiscal.model_dump(),
            }
            self.fiscais.append(item)
            self.estado = EstadoFormulario.ALTERADO
            return item

        if db is None:
            raise FormularioError("Sessão de banco obrigatória para contrato existente")
        obj = Fiscal(contract_id=self.contrato_id, **fiscal.model_dump())
        try:
            db.add(obj)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise FormularioError("Erro ao adicionar fiscal") from e
        item = _fiscal_dict(obj)
        self.fiscais.append(item)
        return item

    def remover_fiscal(self, fiscal_id: Union[int, str], db: Optional[Session] = None) -> None:
        self._exigir_aberto()
        alvo = next((f for f in self.fiscais if str(f["id"]) == str(fiscal_id)), None)
        if alvo is None:
            raise FormularioError("Fiscal não encontrado")

        if not self.novo:
            if db is None:
                raise FormularioError("Sessão de banco obrigatória para contrato existente")
            try:
                db.query(Fiscal).filter(
                    Fiscal.id == int(alvo["id"]), Fiscal.contract_id == self.contrato_id
                ).delete(synchronize_session=False)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise FormularioError("Erro ao remover fiscal") from e
        else:
            self.estado = EstadoFormulario.ALTERADO

        self.fiscais = [f for f in self.fiscais if f is not alvo]

    # ------------------------------------------------------------------
    # documentos (só com contrato salvo)
    # ------------------------------------------------------------------

    def enviar_documento(
        self, db: Session, bucket: Bucket, tipo: str, nome_arquivo: str, conteudo: bytes,
        user_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        self._exigir_aberto()
        if self.novo:
            raise FormularioError("Salve o contrato primeiro para poder adicionar documentos.")
        try:
            doc = documentos_service.enviar_documento(
                db, bucket, self.contrato_id, tipo, nome_arquivo, conteudo, user_id=user_id
            )
        except documentos_service.DocumentoError as e:
            raise FormularioError(str(e)) from e
        item = DocumentoOut.model_validate(doc).model_dump()
        self.documentos.append(item)
        return item

    def excluir_documento(self, db: Session, bucket: Bucket, documento_id: int) -> None:
        self._exigir_aberto()
        if self.novo:
            raise FormularioError("Contrato ainda não foi salvo")
        try:
            documentos_service.excluir_documento(db, bucket, documento_id, contrato_id=self.contrato_id)
        except documentos_service.DocumentoError as e:
            raise FormularioError(str(e)) from e
        self.documentos = [d for d in self.documentos if d["id"] != documento_id]

    # ------------------------------------------------------------------
    # salvar
    # ------------------------------------------------------------------

    def _gravar_contrato(self, db: Session, dados: ContratoIn) -> int:
        payload = dados.model_dump()
        try:
            if self.novo:
                c = Contrato(**payload)
                db.add(c)
                db.flush()
            else:
                c = db.get(Contrato, self.contrato_id)
                if c is None:
                    raise SalvamentoError("Contrato não encontrado")
                for k, v in payload.items():
                    setattr(c, k, v)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if violacao_unicidade(e):
                raise NumeroContratoDuplicadoError() from e
            raise SalvamentoError(f"Erro ao salvar contrato: {e.orig}") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise SalvamentoError("Erro ao salvar contrato") from e
        return c.id

    def _inserir_filho(self, db: Session, tipo: str, indice: int, obj) -> ResultadoFilho:
        try:
            db.add(obj)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log.warning("[formulario] falha ao gravar %s #%s: %s", tipo, indice, e)
            return ResultadoFilho(tipo=tipo, indice=indice, ok=False, erro=str(getattr(e, "orig", e)))
        return ResultadoFilho(tipo=tipo, indice=indice, ok=True, id=obj.id)

    def salvar(self, db: Session, dados: ContratoIn) -> ResultadoSalvamento:
        with self._trava:
            self._exigir_aberto()
            anterior = self.estado
            criado = self.novo
            self.estado = EstadoFormulario.ENVIANDO
        try:
            contrato_id = self._gravar_contrato(db, dados)
        except SalvamentoError:
            self.estado = anterior
            raise

        resultado = ResultadoSalvamento(contrato_id=contrato_id, criado=criado)
        for i, a in enumerate(self.aditivos):
            resultado.filhos.append(
                self._inserir_filho(db, "aditivo", i, Aditivo(contract_id=contrato_id, **a.model_dump()))
            )
        for i, ap in enumerate(self.apostilamentos):
            resultado.filhos.append(
                self._inserir_filho(db, "apostilamento", i, Apostilamento(contract_id=contrato_id, **ap.model_dump()))
            )
        # em edição os fiscais já foram gravados na hora
        if criado:
            for i, f in enumerate(self.fiscais):
                resultado.filhos.append(self._inserir_filho(db, "fiscal", i, Fiscal(
                    contract_id=contrato_id,
                    supervisor_name=f["supervisor_name"],
                    supervisor_email=f.get("supervisor_email"),
                    supervisor_nomination=f.get("supervisor_nomination"),
                )))

        if resultado.falhas:
            log.warning("[formulario] contrato %s salvo com %s filho(s) com falha", contrato_id, len(resultado.falhas))

        self.contrato_id = contrato_id
        self.aditivos = []
        self.apostilamentos = []
        self.estado = EstadoFormulario.CONCLUIDO
        return resultado

    # ------------------------------------------------------------------

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "estado": self.estado.value,
            "novo": self.novo,
            "contrato_id": self.contrato_id,
            "contrato": self.contrato,
            "aditivos_existentes": self.aditivos_existentes,
            "apostilamentos_existentes": self.apostilamentos_existentes,
            "aditivos": [dict(a.model_dump(), indice=i) for i, a in enumerate(self.aditivos)],
            "apostilamentos": [dict(a.model_dump(), indice=i) for i, a in enumerate(self.apostilamentos)],
            "fiscais": self.fiscais,
            "documentos": self.documentos,
        }


class RegistroFormularios:
    """
    Formulários abertos neste processo, por id.
    Cada acesso (abrir/obter) renova o prazo; os parados há mais de `ttl`
    segundos saem na próxima abertura.
    """

    def __init__(self, ttl: float = FORM_TTL_SEGUNDOS, relogio=time.monotonic):
        self.ttl = ttl
        self._relogio = relogio
        self._trava = threading.Lock()
        self._abertos: Dict[str, FormularioContrato] = {}
        self._tocado_em: Dict[str, float] = {}

    def expirar(self) -> int:
        limite = self._relogio() - self.ttl
        with self._trava:
            velhos = [fid for fid, t in self._tocado_em.items() if t < limite]
            for fid in velhos:
                self._abertos.pop(fid, None)
                self._tocado_em.pop(fid, None)
        if velhos:
            log.info("[formulario] %s formulário(s) expirado(s) descartado(s)", len(velhos))
        return len(velhos)

    def abrir(self, db: Optional[Session] = None, contrato_id: Optional[int] = None) -> FormularioContrato:
        self.expirar()
        form = FormularioContrato()
        if contrato_id is None:
            form.abrir_novo()
        else:
            form.abrir_existente(db, contrato_id)
        with self._trava:
            self._abertos[form.id] = form
            self._tocado_em[form.id] = self._relogio()
        return form

    def obter(self, form_id: str) -> FormularioContrato:
        with self._trava:
            form = self._abertos.get(form_id)
            if form is None:
                raise FormularioError("Formulário não encontrado")
            self._tocado_em[form_id] = self._relogio()
        return form

    def fechar(self, form_id: str) -> None:
        with self._trava:
            self._abertos.pop(form_id, None)
            self._tocado_em.pop(form_id, None)

    def __len__(self) -> int:
        return len(self._abertos)
