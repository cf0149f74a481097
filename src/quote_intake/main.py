"""FastAPI application serving the quote intake form."""

from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import quote

import structlog
from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .config import Settings, get_settings
from .coordinator import OperationResult, OperationStatus, PersistenceCoordinator
from .exceptions import InvalidDocumentError, InvalidEditError
from .handles import FileHandleManager
from .integrations import VinDecoderClient, nhtsa_decoder_url
from .schemas import SCHEMA_VERSION
from .schemas.api import (
    DecodeResponse,
    FieldEditsRequest,
    FileRequest,
    HealthResponse,
    ImportRequest,
    IntakeResponse,
    OperationResponse,
    TabRequest,
)
from .storage import DirectoryChooser, FileKeyValueStore, KeyValueStore, detect_capability
from .utils import setup_logging

logger = structlog.get_logger()


def get_coordinator(request: Request) -> PersistenceCoordinator:
    return request.app.state.coordinator


def get_decoder(request: Request) -> VinDecoderClient:
    return request.app.state.decoder


def _operation_response(result: OperationResult) -> OperationResponse:
    if result.status == OperationStatus.NOT_SUPPORTED:
        raise HTTPException(status_code=501, detail=result.message)
    if result.status == OperationStatus.FAILED:
        raise HTTPException(status_code=502, detail=result.message)
    return OperationResponse(
        success=True,
        message=result.message,
        status=result.status.value,
        file=result.file,
        migrations=result.migrations,
        newer_than_schema=result.newer_than_schema,
    )


def _intake_response(coordinator: PersistenceCoordinator, message: str) -> IntakeResponse:
    return IntakeResponse(
        message=message,
        intake=coordinator.state.to_document(),
        status=coordinator.describe(),
    )


def create_app(settings: Optional[Settings] = None,
               store: Optional[KeyValueStore] = None,
               decoder: Optional[VinDecoderClient] = None) -> FastAPI:
    """Build the app. Collaborators can be injected for tests."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        capability = detect_capability(settings)
        coordinator = PersistenceCoordinator(
            store=store if store is not None else FileKeyValueStore(settings.storage_dir),
            handles=FileHandleManager(capability),
            settings=settings,
        )
        await coordinator.load()
        app.state.coordinator = coordinator
        app.state.decoder = decoder if decoder is not None else VinDecoderClient(settings)
        logger.info("Quote intake service started",
                    version=settings.app_version,
                    file_access=capability.value,
                    restored=coordinator.restored)
        try:
            yield
        finally:
            await coordinator.close()
            logger.info("Quote intake service stopped")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Insurance quote intake form with local autosave and file save/open",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def chooser_for(request: FileRequest) -> DirectoryChooser:
        return DirectoryChooser(settings.workspace_dir, request.filename, cancelled=request.cancel)

    @app.get("/health", response_model=HealthResponse)
    async def health_check(coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=settings.app_version,
            schema_version=SCHEMA_VERSION,
            file_access=coordinator.handles.capability.value,
            storage_key=settings.storage_key,
        )

    @app.get("/intake", response_model=IntakeResponse)
    async def get_intake(coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        return _intake_response(coordinator, "Current intake")

    @app.get("/intake/status")
    async def get_status(coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        return coordinator.describe()

    @app.patch("/intake/fields", response_model=IntakeResponse)
    async def edit_fields(request: FieldEditsRequest,
                          coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        """
        Apply field edits in order and schedule an autosave.

        Edits before an invalid one stay applied; the invalid one is reported.
        """
        for edit in request.edits:
            try:
                coordinator.apply_edit(edit.path, edit.value, status_text="Typing...")
            except InvalidEditError as e:
                raise HTTPException(status_code=400, detail=str(e))
        return _intake_response(coordinator, "Updated")

    @app.put("/intake/tab", response_model=IntakeResponse)
    async def set_tab(request: TabRequest,
                      coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        coordinator.set_active_tab(request.tab)
        return _intake_response(coordinator, "Tab switched")

    @app.post("/intake/new", response_model=OperationResponse)
    async def new_intake(coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        return _operation_response(await coordinator.new_intake())

    @app.post("/intake/import", response_model=OperationResponse)
    async def import_intake(request: ImportRequest,
                            coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        """Import pasted JSON text or a parsed document. The bound file is dropped."""
        try:
            if request.text is not None:
                result = await coordinator.import_text(request.text)
            elif request.document is not None:
                result = await coordinator.import_document(request.document)
            else:
                raise InvalidDocumentError("Paste JSON into the box first")
        except InvalidDocumentError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _operation_response(result)

    @app.post("/intake/open", response_model=OperationResponse)
    async def open_intake(request: FileRequest,
                          coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        return _operation_response(await coordinator.open(chooser_for(request)))

    @app.post("/intake/save", response_model=OperationResponse)
    async def save_intake(request: Optional[FileRequest] = Body(None),
                          coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        """Save to the bound file; without one, the request body answers the chooser."""
        chooser = chooser_for(request) if request is not None else None
        return _operation_response(await coordinator.save(chooser))

    @app.post("/intake/save-as", response_model=OperationResponse)
    async def save_intake_as(request: FileRequest,
                             coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        return _operation_response(await coordinator.save_as(chooser_for(request)))

    @app.get("/intake/download")
    async def download_intake(coordinator: PersistenceCoordinator = Depends(get_coordinator)):
        """Indented JSON export as an attachment."""
        document = coordinator.export()
        filename = coordinator.suggested_filename(document)
        return Response(
            content=coordinator.export_text(),
            media_type="application/json",
            headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
        )

    @app.post("/intake/vehicles/{index}/decode", response_model=DecodeResponse)
    async def decode_vehicle(index: int,
                             coordinator: PersistenceCoordinator = Depends(get_coordinator),
                             decoder: VinDecoderClient = Depends(get_decoder)):
        state = coordinator.state
        vehicles = state.auto.vehicles
        if index < 0 or index >= len(vehicles):
            raise HTTPException(status_code=400, detail=f"No vehicle {index}")
        vin = vehicles[index].vin

        result = await decoder.decode(vin)

        # The result belongs to this intake and this VIN only
        current = coordinator.state.auto.vehicles
        if coordinator.state is not state or index >= len(current) or current[index].vin != vin:
            logger.info("Discarded stale VIN decode", index=index, vin=vin)
            raise HTTPException(status_code=409, detail=f"Vehicle {index} changed while decoding")
        try:
            coordinator.apply_edit(f"auto.vehicles.{index}.decoded", result.message)
        except InvalidEditError as e:
            raise HTTPException(status_code=409, detail=str(e))

        return DecodeResponse(
            success=result.ok,
            message="Decoded" if result.ok else result.message,
            index=index,
            vin=vin,
            decoded=result.message,
            decoder_url=nhtsa_decoder_url(vin),
        )

    return app


app = create_app()
