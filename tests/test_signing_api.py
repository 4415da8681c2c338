import base64

import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

CONTENT = b"0123456789"


def create_session(client, file_name="invoice.pdf", content=CONTENT, **extra):
    body = {"fileName": file_name, **extra}
    if content is not None:
        body["data"] = base64.b64encode(content).decode()
    resp = client.post("/sessions", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_flujo_completo_invoice(client):
    created = create_session(client)
    session_id = created["id"]
    assert created["retrievalUrl"].endswith(f"/afirma/documents/{session_id}")

    original = client.get(created["retrievalUrl"])
    assert original.status_code == 200
    assert original.content == CONTENT
    assert original.headers["content-type"] == "application/pdf"
    assert original.headers["content-disposition"] == 'attachment; filename="invoice.pdf"'
    assert original.headers["content-length"] == "10"

    ack = client.post(f"/afirma/storage/{session_id}", content=b"AQID")
    assert ack.status_code == 200
    assert ack.text == "OK"

    status = client.get(f"/sessions/{session_id}/status").json()
    assert status == {"status": "completed", "hasSignedData": True, "error": None}

    download = client.get(created["downloadUrl"])
    assert download.status_code == 200
    assert download.content == bytes([1, 2, 3])
    assert download.headers["content-disposition"] == 'attachment; filename="invoice_firmado.pdf"'


def test_error_de_autofirma(client):
    session_id = create_session(client)["id"]

    ack = client.post(f"/afirma/storage/{session_id}", content=b"SAF_03_ERROR_CANCEL")
    assert ack.text == "OK"

    status = client.get(f"/sessions/{session_id}/status").json()
    assert status == {"status": "error", "hasSignedData": False, "error": "SAF_03_ERROR_CANCEL"}

    download = client.get(f"/sessions/{session_id}/download")
    assert download.status_code == 404
    assert download.json()["error"] == "not_ready"


def test_status_de_id_desconocido(client):
    resp = client.get("/sessions/random-id/status")
    assert resp.status_code == 200
    assert resp.json()["status"] == "not_found"


def test_descarga_antes_de_completar(client):
    session_id = create_session(client)["id"]

    resp = client.get(f"/sessions/{session_id}/download")

    assert resp.status_code == 404
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json()["error"] == "not_ready"
    assert resp.json()["status"] == "pending"


@pytest.mark.parametrize("send", [
    lambda c, sid: c.post(f"/afirma/storage/{sid}", content=b"AQID"),
    lambda c, sid: c.post(f"/afirma/storage/{sid}", data={"op": "put", "dat": "AQID"}),
    lambda c, sid: c.post(f"/afirma/storage/{sid}", json={"data": "AQID"}),
    lambda c, sid: c.get(f"/afirma/storage/{sid}", params={"op": "put", "dat": "AQID"}),
    lambda c, sid: c.post("/afirma/servlet", data={"op": "put", "id": sid, "dat": "AQID"}),
    lambda c, sid: c.get("/afirma/servlet", params={"op": "put", "id": sid, "dat": "AQID"}),
])
def test_convenciones_de_envio(client, send):
    session_id = create_session(client)["id"]

    resp = send(client, session_id)

    assert resp.status_code == 200
    assert resp.text == "OK"
    assert client.get(f"/sessions/{session_id}/status").json()["status"] == "completed"
    assert client.get(f"/sessions/{session_id}/download").content == bytes([1, 2, 3])


def test_envio_ilegible_se_acepta_sin_cambios(client):
    session_id = create_session(client)["id"]

    resp = client.post(f"/afirma/storage/{session_id}", content=b"***")

    assert resp.text == "OK"
    assert client.get(f"/sessions/{session_id}/status").json()["status"] == "pending"


def test_envio_a_sesion_desconocida(client):
    resp = client.post("/afirma/storage/no-existe", content=b"AQID")
    assert resp.status_code == 404


def test_storage_get_sin_datos(client):
    session_id = create_session(client)["id"]
    resp = client.get(f"/afirma/storage/{session_id}")
    assert resp.text == "OK"
    assert client.get(f"/sessions/{session_id}/status").json()["status"] == "pending"


@pytest.mark.parametrize("params", [{"dat": "AQID"}, {"op": "get", "dat": "AQID"}])
def test_storage_get_solo_acepta_op_put(client, params):
    session_id = create_session(client)["id"]

    resp = client.get(f"/afirma/storage/{session_id}", params=params)

    assert resp.text == "OK"
    assert client.get(f"/sessions/{session_id}/status").json()["status"] == "pending"


def test_servlet_get_status_retrieve_download(client):
    session_id = create_session(client)["id"]

    original = client.get("/afirma/servlet", params={"op": "get", "id": session_id})
    assert original.content == CONTENT
    assert original.headers["content-type"] == "application/pdf"

    not_yet = client.get("/afirma/servlet", params={"op": "retrieve", "id": session_id})
    assert not_yet.status_code == 404

    client.post("/afirma/servlet", params={"op": "put", "id": session_id}, content=b"AQID")

    status = client.get("/afirma/servlet", params={"operation": "status", "id": session_id})
    assert status.json() == {"status": "completed", "hasSignedData": True, "error": None}

    retrieved = client.get("/afirma/servlet", params={"op": "retrieve", "id": session_id})
    assert retrieved.text == "AQID"
    assert client.get(f"/afirma/retrieve/{session_id}").text == "AQID"

    download = client.get("/afirma/servlet", params={"op": "download", "id": session_id})
    assert download.content == bytes([1, 2, 3])


def test_servlet_peticiones_invalidas(client):
    assert client.get("/afirma/servlet", params={"op": "get"}).status_code == 400
    session_id = create_session(client)["id"]
    assert client.get("/afirma/servlet", params={"op": "borrar", "id": session_id}).status_code == 400
    assert client.get("/afirma/servlet", params={"op": "get", "id": "no-existe"}).status_code == 404


def test_sesion_diferida_con_subida(client, example_pdf):
    created = create_session(client, "contrato.pdf", content=None)
    session_id = created["id"]

    assert client.get(created["retrievalUrl"]).status_code == 404

    resp = client.put(
        created["uploadUrl"], content=example_pdf, headers={"Content-Type": "application/pdf"}
    )
    assert resp.status_code == 200

    assert client.get(f"/sessions/{session_id}/status").json()["status"] == "uploaded"
    assert client.get(created["retrievalUrl"]).content == example_pdf


def test_subida_a_sesion_desconocida(client):
    resp = client.put("/sessions/no-existe/document", content=b"%PDF")
    assert resp.status_code == 404


def test_registro_con_id_del_cliente(client):
    created = create_session(client, id="sign_cliente_1")
    assert created["id"] == "sign_cliente_1"
    assert client.get("/afirma/documents/sign_cliente_1").content == CONTENT


def test_datos_base64_invalidos(client):
    resp = client.post("/sessions", json={"fileName": "x.pdf", "data": "***"})
    assert resp.status_code == 400


def test_documento_demasiado_grande(client):
    too_big = b"x" * (1024 * 1024 + 1)
    resp = client.post(
        "/sessions", json={"fileName": "x.pdf", "data": base64.b64encode(too_big).decode()}
    )
    assert resp.status_code == 413


def test_prestorage(client, app, clock):
    resp = client.post(
        "/afirma/prestorage",
        json={"id": "pre-1", "fileName": "grande.pdf", "data": base64.b64encode(CONTENT).decode()},
    )
    assert resp.status_code == 200
    assert resp.json()["storageId"] == "pre-1"
    assert client.get(resp.json()["retrievalUrl"]).content == CONTENT

    clock.advance(minutes=31)
    app.state.sweeper.sweep_prestorage()
    assert client.get("/sessions/pre-1/status").json()["status"] == "not_found"


def test_descarga_repetida_y_borrado_tras_la_gracia(client, app, clock):
    session_id = create_session(client)["id"]
    client.post(f"/afirma/storage/{session_id}", content=b"AQID")

    first = client.get(f"/sessions/{session_id}/download")
    second = client.get(f"/sessions/{session_id}/download")
    assert first.content == second.content == bytes([1, 2, 3])
    assert [job.id for job in app.state.jobs.scheduler.get_jobs()].count(f"reap-{session_id}") == 1

    clock.advance(seconds=11)
    app.state.sweeper.sweep()
    assert client.get(f"/sessions/{session_id}/status").json()["status"] == "not_found"
    assert client.get(f"/sessions/{session_id}/download").status_code == 404


def test_health(client):
    create_session(client)
    create_session(client)

    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "OK"
    assert resp.json()["sessions"] == 2


def test_validacion_pdf_activada(tmp_path, clock, example_pdf):
    settings = Settings(STORAGE_DIR=str(tmp_path), VALIDATE_PDF=True)
    with TestClient(create_app(settings, clock)) as client:
        bad = client.post(
            "/sessions",
            json={"fileName": "x.pdf", "data": base64.b64encode(b"This is not a PDF docx").decode()},
        )
        assert bad.status_code == 400
        assert bad.json()["error"] == "invalid_document"

        good = create_session(client, "ok.pdf", content=example_pdf)
        assert client.get(good["retrievalUrl"]).content == example_pdf


def test_importar_main_no_construye_la_app():
    import main

    assert not hasattr(main, "app")
