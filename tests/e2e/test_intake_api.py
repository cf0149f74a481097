import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from quote_intake.integrations import VinDecoderClient
from quote_intake.main import create_app
from quote_intake.storage import InMemoryKeyValueStore


def nhtsa_stub(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"Results": [{"ModelYear": "2003", "Make": "HONDA", "Model": "Accord"}]})


class TestIntakeAPI:
    """End-to-end tests for the intake HTTP surface"""

    @pytest.fixture
    def store(self):
        return InMemoryKeyValueStore()

    @pytest.fixture
    def app(self, settings, store):
        decoder = VinDecoderClient(settings, transport=httpx.MockTransport(nhtsa_stub))
        return create_app(settings=settings, store=store, decoder=decoder)

    @pytest.fixture
    def client(self, app):
        with TestClient(app) as client:
            yield client

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["schema_version"] == 3
        assert body["file_access"] == "supported"

    def test_edit_then_read_back(self, client):
        response = client.patch("/intake/fields", json={"edits": [
            {"path": "customer.name", "value": "Ada"},
            {"path": "auto.counts.drivers", "value": 2},
            {"path": "auto.drivers.1.licenseState", "value": "TX"},
        ]})
        assert response.status_code == 200

        intake = client.get("/intake").json()["intake"]
        assert intake["customer"]["name"] == "Ada"
        assert len(intake["auto"]["drivers"]) == 2
        assert intake["auto"]["drivers"][1]["licenseState"] == "TX"

    def test_invalid_edit_is_400(self, client):
        response = client.patch("/intake/fields", json={"edits": [{"path": "customer.nope", "value": 1}]})
        assert response.status_code == 400

    def test_tab(self, client):
        response = client.put("/intake/tab", json={"tab": "home"})
        assert response.json()["intake"]["lastActiveTab"] == "home"

    def test_import_text_and_document(self, client):
        response = client.post("/intake/import", json={"text": '{"home": {"dwellingCoverage": "5"}}'})
        assert response.status_code == 200
        assert response.json()["migrations"] == 1
        assert client.get("/intake").json()["intake"]["home"]["dwellingCoverageA"] == "5"

        response = client.post("/intake/import", json={"document": {"meta": {"version": 7}}})
        assert response.json()["newer_than_schema"] is True

    @pytest.mark.parametrize("payload", [{"text": "{bad"}, {"text": "  "}, {}])
    def test_import_invalid_is_400(self, client, payload):
        assert client.post("/intake/import", json=payload).status_code == 400

    def test_save_as_then_save_then_open(self, client, settings, tmp_path):
        client.patch("/intake/fields", json={"edits": [{"path": "customer.name", "value": "Ada"}]})

        response = client.post("/intake/save-as", json={"filename": "ada"})
        assert response.status_code == 200
        assert response.json()["file"] == "ada.json"

        client.patch("/intake/fields", json={"edits": [{"path": "customer.phone", "value": "555"}]})
        response = client.post("/intake/save")
        assert response.json()["status"] == "saved"

        saved = json.loads((tmp_path / "intakes" / "ada.json").read_text(encoding="utf-8"))
        assert saved["customer"]["phone"] == "555"

        client.post("/intake/new")
        response = client.post("/intake/open", json={"filename": "ada.json"})
        assert response.json()["status"] == "opened"
        assert client.get("/intake").json()["intake"]["customer"]["name"] == "Ada"

    def test_cancelled_chooser_is_200(self, client):
        response = client.post("/intake/save-as", json={"cancel": True})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        response = client.post("/intake/open", json={})
        assert response.json()["status"] == "cancelled"

    def test_open_failure_is_502(self, client):
        assert client.post("/intake/open", json={"filename": "missing"}).status_code == 502

    def test_download(self, client):
        client.patch("/intake/fields", json={"edits": [{"path": "customer.name", "value": "Jane Doe"}]})
        response = client.get("/intake/download")

        assert response.status_code == 200
        assert "Jane%20Doe_" in response.headers["content-disposition"]
        assert response.json()["customer"]["name"] == "Jane Doe"

    def test_decode_vehicle(self, client):
        client.patch("/intake/fields", json={"edits": [
            {"path": "auto.counts.vehicles", "value": 1},
            {"path": "auto.vehicles.0.vin", "value": "1hgcm82633a004352"},
        ]})
        response = client.post("/intake/vehicles/0/decode")

        assert response.status_code == 200
        assert response.json()["decoded"] == "2003 HONDA Accord"
        assert client.get("/intake").json()["intake"]["auto"]["vehicles"][0]["decoded"] == "2003 HONDA Accord"

        assert client.post("/intake/vehicles/5/decode").status_code == 400

    def test_shutdown_flushes_pending_edit(self, app, store, settings):
        with TestClient(app) as client:
            client.patch("/intake/fields", json={"edits": [{"path": "customer.email", "value": "a@b.c"}]})
        assert json.loads(store.values[settings.storage_key])["customer"]["email"] == "a@b.c"


class TestUnsupportedHost:
    def test_file_operations_are_501(self, settings):
        settings.file_access_enabled = False
        app = create_app(settings=settings, store=InMemoryKeyValueStore())
        with TestClient(app) as client:
            assert client.post("/intake/save-as", json={"filename": "x"}).status_code == 501
            assert client.post("/intake/open", json={"filename": "x"}).status_code == 501
            assert client.get("/health").json()["file_access"] == "unsupported"
            assert client.get("/intake/download").status_code == 200


class TestDecodeWhileIntakeChanges:
    """A VIN lookup that finishes after the intake changed must not write its result"""

    VIN = "1HGCM82633A004352"
    OTHER_VIN = "2HGCM82633A004352"

    @pytest.fixture
    def gate(self):
        return {"entered": asyncio.Event(), "release": asyncio.Event()}

    @pytest.fixture
    def app(self, settings, gate):
        async def slow_nhtsa(request: httpx.Request) -> httpx.Response:
            gate["entered"].set()
            await gate["release"].wait()
            return nhtsa_stub(request)

        decoder = VinDecoderClient(settings, transport=httpx.MockTransport(slow_nhtsa))
        return create_app(settings=settings, store=InMemoryKeyValueStore(), decoder=decoder)

    async def _decode_racing(self, app, gate, change):
        async with app.router.lifespan_context(app):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://intake") as client:
                await client.patch("/intake/fields", json={"edits": [
                    {"path": "auto.counts.vehicles", "value": 1},
                    {"path": "auto.vehicles.0.vin", "value": self.VIN},
                ]})
                decode = asyncio.create_task(client.post("/intake/vehicles/0/decode"))
                await gate["entered"].wait()

                await change(client)
                gate["release"].set()
                response = await decode

                intake = (await client.get("/intake")).json()["intake"]
        return response, intake

    @pytest.mark.asyncio
    async def test_import_during_decode(self, app, gate):
        async def import_other(client):
            await client.post("/intake/import", json={"document": {"auto": {"vehicles": [{"vin": self.OTHER_VIN}]}}})

        response, intake = await self._decode_racing(app, gate, import_other)

        assert response.status_code == 409
        assert intake["auto"]["vehicles"][0] == {"vin": self.OTHER_VIN, "decoded": ""}

    @pytest.mark.asyncio
    async def test_vin_edited_during_decode(self, app, gate):
        async def retype_vin(client):
            await client.patch("/intake/fields", json={"edits": [{"path": "auto.vehicles.0.vin", "value": self.OTHER_VIN}]})

        response, intake = await self._decode_racing(app, gate, retype_vin)

        assert response.status_code == 409
        assert intake["auto"]["vehicles"][0]["decoded"] == ""

    @pytest.mark.asyncio
    async def test_unchanged_intake_gets_result(self, app, gate):
        async def nothing(client):
            return None

        response, intake = await self._decode_racing(app, gate, nothing)

        assert response.status_code == 200
        assert intake["auto"]["vehicles"][0]["decoded"] == "2003 HONDA Accord"
