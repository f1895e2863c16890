# Versão: 1.0.0 (2025-10-02)
from datetime import date, timedelta

from conftest import criar_usuario
from models import Aditivo, Contrato, Fiscal


def _contrato(db, numero, **over):
    dados = dict(
        contract_number=numero, modality="Pregão", object="Limpeza predial", contracted_company="ACME",
        contract_value=100, start_date=date(2024, 1, 1), end_date=date(2024, 12, 31),
        status="Vigente", process_number=f"P-{numero}",
    )
    dados.update(over)
    c = Contrato(**dados)
    db.add(c)
    db.commit()
    return c


# ----------------- consulta pública -----------------
def test_lista_publica_com_filtros(client, db_session):
    _contrato(db_session, "1", object="Limpeza predial", contracted_company="ACME")
    _contrato(db_session, "2", object="Vigilância", contracted_company="Segura SA", status="Encerrado")
    _contrato(db_session, "3", object="Software", contracted_company="Limpa Tudo", modality="Dispensa",
              start_date=date(2025, 1, 1), end_date=date(2025, 12, 31))

    r = client.get("/api/contratos")
    assert r.status_code == 200
    assert r.json()["total"] == 3
    assert r.headers["X-Endpoint-Version"] == "1.1.0"

    numeros = lambda resp: sorted(i["contract_number"] for i in resp.json()["items"])
    assert numeros(client.get("/api/contratos", params={"busca": "limp"})) == ["1", "3"]
    assert numeros(client.get("/api/contratos", params={"status": "Encerrado"})) == ["2"]
    assert numeros(client.get("/api/contratos", params={"modalidade": "Dispensa"})) == ["3"]
    assert numeros(client.get("/api/contratos", params={"inicio": "2024-06-01"})) == ["3"]

    html = client.get("/")
    assert html.status_code == 200
    assert "Limpeza predial" in html.text


def test_detalhe_publico_com_rotulos(client, db_session):
    c = _contrato(db_session, "10")
    db_session.add_all([
        Aditivo(contract_id=c.id, amendment_type="Aditivo de Valor", new_value=200, process_number="A-1"),
        Aditivo(contract_id=c.id, amendment_type="Aditivo de Prazo", new_end_date=date(2025, 6, 30),
                process_number="A-2"),
        Fiscal(contract_id=c.id, supervisor_name="Rita"),
    ])
    db_session.commit()

    r = client.get(f"/api/contratos/{c.id}")
    assert r.status_code == 200
    body = r.json()
    assert [a["rotulo"] for a in body["aditivos"]] == ["1º Aditivo", "2º Aditivo"]
    assert body["fiscais"][0]["supervisor_name"] == "Rita"

    assert client.get(f"/contratos/{c.id}").status_code == 200
    assert client.get("/api/contratos/9999").status_code == 404


# ----------------- acesso -----------------
def test_admin_exige_login(client):
    r = client.get("/admin/contratos", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/auth?next=/admin/contratos")

    assert client.get("/admin/api/contratos").status_code == 401
    assert client.post("/admin/importar").status_code == 401


def test_usuario_sem_papel_admin_recebe_403(client, db_session):
    criar_usuario(db_session, "leitor", "senha123", papel="user")
    r = client.post("/auth", data={"username": "leitor", "password": "senha123"}, follow_redirects=False)
    assert r.status_code == 303
    assert client.get("/admin/api/contratos").status_code == 403


def test_login_invalido(client, db_session):
    criar_usuario(db_session, "admin2", "certa", papel="admin")
    r = client.post("/auth", data={"username": "admin2", "password": "errada"}, follow_redirects=False)
    assert r.status_code == 401


# ----------------- console -----------------
def test_admin_exclui_com_cascata(admin_client, db_session):
    c = _contrato(db_session, "20")
    db_session.add(Fiscal(contract_id=c.id, supervisor_name="Rui"))
    db_session.commit()
    cid = c.id

    r = admin_client.delete(f"/admin/contratos/{cid}")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "mensagem": "Contrato excluído com sucesso!"}
    db_session.expire_all()
    assert db_session.query(Fiscal).filter_by(contract_id=cid).count() == 0
    assert admin_client.delete(f"/admin/contratos/{cid}").status_code == 404


def test_fluxo_formulario_novo(admin_client, db_session):
    form = admin_client.post("/admin/formularios").json()["formulario"]
    fid = form["id"]
    assert form["novo"] is True

    r = admin_client.post(f"/admin/formularios/{fid}/aditivos",
                          json={"amendment_type": "Aditivo de Valor", "new_value": 50, "process_number": "A-1"})
    assert r.json()["ok"] is True
    r = admin_client.post(f"/admin/formularios/{fid}/aditivos", json={"amendment_type": "Aditivo de Valor"})
    assert r.status_code == 422
    assert r.json()["ok"] is False
    admin_client.post(f"/admin/formularios/{fid}/fiscais", json={"supervisor_name": "Lia"})

    r = admin_client.post(f"/admin/formularios/{fid}/documentos",
                          data={"tipo": "Contrato"}, files={"arquivo": ("c.pdf", b"%PDF", "application/pdf")})
    assert r.json()["mensagem"] == "Salve o contrato primeiro para poder adicionar documentos."

    r = admin_client.post(f"/admin/formularios/{fid}/salvar", json={
        "contract_number": "30/2024", "modality": "Pregão", "object": "Obra", "contracted_company": "Zeta",
        "contract_value": 10, "start_date": "2024-01-01", "end_date": "2024-06-30",
        "status": "Vigente", "process_number": "P-30",
    })
    body = r.json()
    assert body["ok"] is True
    assert body["mensagem"] == "Contrato criado com sucesso!"
    assert (body["aditivos"], body["fiscais"], body["falhas"]) == (1, 1, [])
    assert admin_client.get(f"/admin/formularios/{fid}").status_code == 404


def test_abrir_formulario_com_id_invalido(admin_client):
    r = admin_client.post("/admin/formularios", json={"contrato_id": "abc"})
    assert r.status_code == 422
    assert r.json() == {"ok": False, "mensagem": "contrato_id inválido"}
    assert admin_client.post("/admin/formularios", json={"contrato_id": 999}).status_code == 404


def test_documento_em_contrato_existente(admin_client, db_session):
    c = _contrato(db_session, "40")
    fid = admin_client.post("/admin/formularios", json={"contrato_id": c.id}).json()["formulario"]["id"]

    r = admin_client.post(f"/admin/formularios/{fid}/documentos",
                          data={"tipo": "Contrato"}, files={"arquivo": ("c.pdf", b"%PDF-1.4", "application/pdf")})
    body = r.json()
    assert body["ok"] is True
    doc_id = body["documento"]["id"]

    baixado = admin_client.get(f"/documentos/{doc_id}/arquivo")
    assert baixado.status_code == 200
    assert baixado.content == b"%PDF-1.4"

    assert admin_client.delete(f"/admin/formularios/{fid}/documentos/{doc_id}").json()["ok"] is True
    assert admin_client.get(f"/documentos/{doc_id}/arquivo").status_code == 404


def test_importar_endpoint_mensagens(admin_client, db_session):
    _contrato(db_session, "2/2024")
    cab = "Número do Contrato;Objeto;Empresa Contratada;Data Início;Data Fim;Número Processo\n"
    ok = (cab + "1/2024;Obra;ACME;2024-01-01;2024-12-31;P-1\n;Sem número;ACME;2024-01-01;2024-12-31;P-2\n")
    r = admin_client.post("/admin/importar", files={"arquivo": ("c.csv", ok.encode(), "text/csv")})
    assert r.status_code == 200
    assert r.json()["mensagem"] == (
        "1 contrato(s) importado(s) com sucesso! 1 linha(s) ignorada(s) por falta de campos obrigatórios."
    )

    dup = cab + "2/2024;Obra;ACME;2024-01-01;2024-12-31;P-3\n"
    r = admin_client.post("/admin/importar", files={"arquivo": ("c.csv", dup.encode(), "text/csv")})
    assert r.status_code == 409
    assert r.json()["duplicado"] is True

    t = admin_client.get("/admin/importar/template")
    assert t.status_code == 200
    assert t.content[:2] == b"PK"


def test_dashboard_vencimentos(admin_client, db_session):
    hoje = date.today()
    _contrato(db_session, "v30", end_date=hoje + timedelta(days=30))
    _contrato(db_session, "v50", end_date=hoje + timedelta(days=50))
    _contrato(db_session, "v80", end_date=hoje + timedelta(days=80))
    _contrato(db_session, "v200", end_date=hoje + timedelta(days=200))
    _contrato(db_session, "enc", end_date=hoje + timedelta(days=10), status="Encerrado")
    _contrato(db_session, "venc", end_date=hoje - timedelta(days=1))

    r = admin_client.get("/admin/dashboard/resumo").json()
    assert (r["vencendo_90"], r["vencendo_60"], r["vencendo_45"]) == (3, 2, 1)
    assert [c["contract_number"] for c in r["vencendo"]] == ["v30", "v50", "v80"]
    assert r["total_contratos"] == 6
