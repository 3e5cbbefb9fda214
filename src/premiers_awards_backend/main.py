from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, Response

from .configuration import get_runtime_settings, load_program_config
from .database import EventDatabase, NominationDatabase
from .errors import InvalidInput
from .events import EventManager
from .global_settings import GlobalSettings
from .middleware import RequestLogMiddleware, register_error_handlers
from .models import (
    AttachmentRecord,
    AttachmentUpdate,
    EventSettings,
    EventSettingsUpdate,
    ExportFormat,
    ExportLink,
    ExportRequest,
    GlobalSetting,
    GuestCreate,
    GuestRecord,
    GuestUpdate,
    NominationCreate,
    NominationRecord,
    NominationUpdate,
    RegenerationSummary,
    RegistrationCreate,
    RegistrationLists,
    RegistrationRecord,
    RegistrationUpdate,
    SchemaOptions,
    SettingCreate,
    SettingUpdate,
    SubmitRequest,
    TableCount,
    TableCreate,
    TableLists,
    TableRecord,
    TableUpdate,
    UploadedFile,
)
from .nominations import NominationManager
from .packaging import NominationPackager
from .pdf_converter import PdfConverterClient
from .s3_service import DEFAULT_EXPIRATION, ArchivePublisher
from .schema import ConfigSchemaLookup
from .templating import NominationRenderer
from .utils import delete_file, ensure_directory, is_accepted_mime_type, sanitize_filename

runtime = get_runtime_settings()
program = load_program_config()

logging.basicConfig(
    level=runtime.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Premier's Awards Nominations API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=runtime.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLogMiddleware)
register_error_handlers(app)

database = NominationDatabase(runtime.db_path)
schema = ConfigSchemaLookup(program)
global_settings = GlobalSettings(database, default_year=int(program.program.year))
packager = NominationPackager(
    renderer=NominationRenderer(schema, timezone=program.program.timezone),
    converter=PdfConverterClient(runtime.pdf_convert_url, timeout=runtime.pdf_convert_timeout),
    generated_root=ensure_directory(runtime.generated_root),
    footer=program.program.footer,
    max_pages=program.program.max_pages,
)
nomination_manager = NominationManager(
    db=database,
    schema=schema,
    settings=global_settings,
    packager=packager,
    program=program,
    upload_root=runtime.upload_root,
    export_root=runtime.export_root,
)
publisher = ArchivePublisher(runtime.s3_bucket_name)
event_manager = EventManager(EventDatabase(runtime.db_path), program)


def get_manager() -> NominationManager:
    return nomination_manager


def get_settings() -> GlobalSettings:
    return global_settings


def get_publisher() -> ArchivePublisher:
    return publisher


def get_event_manager() -> EventManager:
    return event_manager


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/schema", response_model=SchemaOptions)
def get_schema(manager: NominationManager = Depends(get_manager)) -> SchemaOptions:
    return manager.schema_options()


# Nominations

nominations = APIRouter(prefix="/nominations", tags=["nominations"])


@nominations.post("/create", response_model=NominationRecord, status_code=201)
def create_nomination(data: NominationCreate, manager: NominationManager = Depends(get_manager)) -> NominationRecord:
    return manager.create(data)


@nominations.get("/view/user/{guid}", response_model=List[NominationRecord])
def list_user_nominations(guid: str, manager: NominationManager = Depends(get_manager)) -> List[NominationRecord]:
    return manager.list_by_user(guid)


@nominations.get("/view/{nomination_id}", response_model=NominationRecord)
def get_nomination(nomination_id: str, manager: NominationManager = Depends(get_manager)) -> NominationRecord:
    return manager.get(nomination_id)


@nominations.get("/view", response_model=List[NominationRecord])
def list_nominations(manager: NominationManager = Depends(get_manager)) -> List[NominationRecord]:
    return manager.list_all()


@nominations.post("/update/{nomination_id}", response_model=NominationRecord)
def update_nomination(
    nomination_id: str,
    data: NominationUpdate,
    manager: NominationManager = Depends(get_manager),
) -> NominationRecord:
    return manager.update(nomination_id, data)


@nominations.post("/submit/{nomination_id}", response_model=NominationRecord)
async def submit_nomination(
    nomination_id: str,
    data: SubmitRequest,
    manager: NominationManager = Depends(get_manager),
) -> NominationRecord:
    return await manager.submit(nomination_id, data)


@nominations.post("/unsubmit/{nomination_id}", response_model=NominationRecord)
def unsubmit_nomination(nomination_id: str, manager: NominationManager = Depends(get_manager)) -> NominationRecord:
    return manager.unsubmit(nomination_id)


@nominations.post("/delete/{nomination_id}")
def delete_nomination(nomination_id: str, manager: NominationManager = Depends(get_manager)) -> Dict[str, str]:
    manager.delete(nomination_id)
    return {"status": "deleted"}


@nominations.post("/export/{export_format}", response_model=None)
async def export_nominations(
    export_format: ExportFormat,
    data: ExportRequest,
    manager: NominationManager = Depends(get_manager),
    archive_publisher: ArchivePublisher = Depends(get_publisher),
) -> Union[Response, ExportLink]:
    export = await manager.export(data.ids, data.year, export_format)
    result = export.content
    headers = {
        "Content-Disposition": f'attachment; filename="{export.filename}"',
        "X-Skipped-Entries": str(len(result.skipped)),
    }
    if result.path is not None:
        if archive_publisher.enabled:
            url = await asyncio.to_thread(archive_publisher.publish, result.path)
            if url:
                return ExportLink(url=url, expires_in=DEFAULT_EXPIRATION)
            logger.warning(f"Serving export {result.path.name} directly after S3 publish failed")
        return FileResponse(result.path, media_type=export.media_type, filename=export.filename, headers=headers)
    return Response(content=result.read(), media_type=export.media_type, headers=headers)


@nominations.get("/download/{nomination_id}")
def download_nomination(nomination_id: str, manager: NominationManager = Depends(get_manager)) -> FileResponse:
    path = manager.download_path(nomination_id)
    return FileResponse(path, media_type="application/pdf", filename=path.name)


# Attachments

attachments = APIRouter(prefix="/nominations/attachments", tags=["attachments"])


async def _store_upload(file: UploadFile, directory: Path) -> UploadedFile:
    original = file.filename or "attachment.pdf"
    destination = ensure_directory(directory) / f"attachment_{uuid4()}_{sanitize_filename(original)}"

    size = 0
    with destination.open("wb") as buffer:
        while chunk := await file.read(8 * 1024 * 1024):
            buffer.write(chunk)
            size += len(chunk)
    await file.close()
    return UploadedFile(
        path=str(destination),
        originalname=original,
        mimetype=file.content_type or "application/pdf",
        size=size,
    )


@attachments.post("/upload/{nomination_id}", response_model=List[AttachmentRecord], status_code=201)
async def upload_attachments(
    nomination_id: str,
    attached: List[UploadFile] = File(...),
    label: str = Form(""),
    description: str = Form(""),
    manager: NominationManager = Depends(get_manager),
) -> List[AttachmentRecord]:
    manager.check_upload(nomination_id, len(attached))
    for upload in attached:
        if not is_accepted_mime_type(upload.content_type, manager.accepted_mime_types):
            raise InvalidInput(f"Unsupported attachment type '{upload.content_type}' for {upload.filename}.")

    directory = manager.upload_dir(nomination_id)
    stored: List[UploadedFile] = []
    try:
        for upload in attached:
            stored.append(await _store_upload(upload, directory))
        return manager.add_attachments(
            nomination_id,
            stored,
            labels=[label] * len(stored),
            descriptions=[description] * len(stored),
        )
    except Exception:
        for item in stored:
            delete_file(item.path)
        raise


@attachments.post("/update/{attachment_id}", response_model=AttachmentRecord)
def update_attachment(
    attachment_id: str,
    data: AttachmentUpdate,
    manager: NominationManager = Depends(get_manager),
) -> AttachmentRecord:
    return manager.update_attachment(attachment_id, data)


@attachments.get("/view/{nomination_id}", response_model=List[AttachmentRecord])
def list_attachments(nomination_id: str, manager: NominationManager = Depends(get_manager)) -> List[AttachmentRecord]:
    return manager.list_attachments(nomination_id)


@attachments.get("/download/{attachment_id}")
def download_attachment(attachment_id: str, manager: NominationManager = Depends(get_manager)) -> FileResponse:
    attachment = manager.get_attachment(attachment_id)
    path = manager.attachment_path(attachment_id)
    return FileResponse(path, media_type=attachment.file.mimetype, filename=attachment.file.originalname)


@attachments.post("/delete/{attachment_id}")
def delete_attachment(attachment_id: str, manager: NominationManager = Depends(get_manager)) -> Dict[str, str]:
    manager.delete_attachment(attachment_id)
    return {"status": "deleted"}


# Administration

admin = APIRouter(prefix="/admin/settings", tags=["admin"])


@admin.get("/", response_model=List[GlobalSetting])
def list_settings(settings: GlobalSettings = Depends(get_settings)) -> List[GlobalSetting]:
    return settings.list_all()


@admin.get("/type/{setting_type}", response_model=List[GlobalSetting])
def list_settings_by_type(setting_type: str, settings: GlobalSettings = Depends(get_settings)) -> List[GlobalSetting]:
    return settings.by_type(setting_type)


@admin.post("/create", response_model=GlobalSetting, status_code=201)
def create_setting(data: SettingCreate, settings: GlobalSettings = Depends(get_settings)) -> GlobalSetting:
    return settings.create(data)


@admin.post("/update/{setting_id}", response_model=GlobalSetting)
def update_setting(
    setting_id: str,
    data: SettingUpdate,
    settings: GlobalSettings = Depends(get_settings),
) -> GlobalSetting:
    return settings.update(setting_id, data)


@admin.post("/delete/{setting_id}")
def delete_setting(setting_id: str, settings: GlobalSettings = Depends(get_settings)) -> Dict[str, str]:
    settings.delete(setting_id)
    return {"status": "deleted"}


@admin.post("/regenerate", response_model=RegenerationSummary)
async def regenerate_packages(manager: NominationManager = Depends(get_manager)) -> RegenerationSummary:
    return await manager.regenerate_all()


@admin.get("/{setting_id}", response_model=GlobalSetting)
def get_setting(setting_id: str, settings: GlobalSettings = Depends(get_settings)) -> GlobalSetting:
    return settings.get(setting_id)


# Awards event

events = APIRouter(prefix="/events", tags=["events"])


@events.get("/registrations", response_model=List[RegistrationRecord])
def list_registrations(
    organization: Optional[str] = None,
    manager: EventManager = Depends(get_event_manager),
) -> List[RegistrationRecord]:
    return manager.list_registrations(organization)


@events.post("/registrations", response_model=RegistrationRecord, status_code=201)
def create_registration(
    data: RegistrationCreate,
    manager: EventManager = Depends(get_event_manager),
) -> RegistrationRecord:
    return manager.create_registration(data)


@events.post("/registrations/delete/{registration_id}")
def delete_registration(registration_id: str, manager: EventManager = Depends(get_event_manager)) -> Dict[str, str]:
    manager.delete_registration(registration_id)
    return {"status": "deleted"}


@events.post("/registrations/{registration_id}/push", response_model=RegistrationRecord)
def push_registration(
    registration_id: str,
    data: RegistrationLists,
    manager: EventManager = Depends(get_event_manager),
) -> RegistrationRecord:
    return manager.push_registration(registration_id, data)


@events.post("/registrations/{registration_id}/pull", response_model=RegistrationRecord)
def pull_registration(
    registration_id: str,
    data: RegistrationLists,
    manager: EventManager = Depends(get_event_manager),
) -> RegistrationRecord:
    return manager.pull_registration(registration_id, data)


@events.post("/registrations/{registration_id}", response_model=RegistrationRecord)
def update_registration(
    registration_id: str,
    data: RegistrationUpdate,
    manager: EventManager = Depends(get_event_manager),
) -> RegistrationRecord:
    return manager.update_registration(registration_id, data)


@events.get("/registrations/{user_guid}/all", response_model=List[RegistrationRecord])
def list_user_registrations(
    user_guid: str,
    manager: EventManager = Depends(get_event_manager),
) -> List[RegistrationRecord]:
    return manager.user_registrations(user_guid)


@events.get("/registrations/{key}/guests", response_model=List[GuestRecord])
def list_registration_guests(key: str, manager: EventManager = Depends(get_event_manager)) -> List[GuestRecord]:
    return manager.registration_guests(key)


@events.get("/registrations/{key}", response_model=RegistrationRecord)
def get_registration(key: str, manager: EventManager = Depends(get_event_manager)) -> RegistrationRecord:
    return manager.get_registration(key)


@events.get("/guests", response_model=List[GuestRecord])
def list_guests(manager: EventManager = Depends(get_event_manager)) -> List[GuestRecord]:
    return manager.list_guests()


@events.post("/guests", response_model=GuestRecord, status_code=201)
def create_guest(data: GuestCreate, manager: EventManager = Depends(get_event_manager)) -> GuestRecord:
    return manager.create_guest(data)


@events.post("/guests/delete/{guest_id}")
def delete_guest(guest_id: str, manager: EventManager = Depends(get_event_manager)) -> Dict[str, str]:
    manager.delete_guest(guest_id)
    return {"status": "deleted"}


@events.post("/guests/{guest_id}", response_model=GuestRecord)
def update_guest(
    guest_id: str,
    data: GuestUpdate,
    manager: EventManager = Depends(get_event_manager),
) -> GuestRecord:
    return manager.update_guest(guest_id, data)


@events.get("/guests/{guest_id}", response_model=GuestRecord)
def get_guest(guest_id: str, manager: EventManager = Depends(get_event_manager)) -> GuestRecord:
    return manager.get_guest(guest_id)


@events.get("/seating", response_model=List[TableRecord])
def list_tables(manager: EventManager = Depends(get_event_manager)) -> List[TableRecord]:
    return manager.list_tables()


@events.get("/seating/count", response_model=TableCount)
def count_tables(manager: EventManager = Depends(get_event_manager)) -> TableCount:
    return TableCount(count=manager.count_tables())


@events.post("/seating", response_model=TableRecord, status_code=201)
def create_table(data: TableCreate, manager: EventManager = Depends(get_event_manager)) -> TableRecord:
    return manager.create_table(data)


@events.post("/seating/generate", response_model=List[TableRecord])
def generate_tables(manager: EventManager = Depends(get_event_manager)) -> List[TableRecord]:
    return manager.generate_tables()


@events.post("/seating/deleteall", response_model=List[TableRecord])
def delete_all_seating(manager: EventManager = Depends(get_event_manager)) -> List[TableRecord]:
    return manager.delete_all()


@events.post("/seating/delete/{table_id}")
def delete_table(table_id: str, manager: EventManager = Depends(get_event_manager)) -> Dict[str, str]:
    manager.delete_table(table_id)
    return {"status": "deleted"}


@events.post("/seating/{table_id}/push", response_model=TableRecord)
def push_table(
    table_id: str,
    data: TableLists,
    manager: EventManager = Depends(get_event_manager),
) -> TableRecord:
    return manager.push_table(table_id, data)


@events.post("/seating/{table_id}/pull", response_model=TableRecord)
def pull_table(
    table_id: str,
    data: TableLists,
    manager: EventManager = Depends(get_event_manager),
) -> TableRecord:
    return manager.pull_table(table_id, data)


@events.post("/seating/{table_id}", response_model=TableRecord)
def update_table(
    table_id: str,
    data: TableUpdate,
    manager: EventManager = Depends(get_event_manager),
) -> TableRecord:
    return manager.update_table(table_id, data)


@events.get("/seating/{key}/guests", response_model=List[GuestRecord])
def list_table_guests(key: str, manager: EventManager = Depends(get_event_manager)) -> List[GuestRecord]:
    return manager.table_guests(key)


@events.get("/seating/{key}", response_model=TableRecord)
def get_table(key: str, manager: EventManager = Depends(get_event_manager)) -> TableRecord:
    return manager.get_table(key)


@events.get("/settings", response_model=EventSettings)
def get_event_settings(manager: EventManager = Depends(get_event_manager)) -> EventSettings:
    return manager.event_settings()


@events.post("/settings", response_model=EventSettings)
def update_event_settings(
    data: EventSettingsUpdate,
    manager: EventManager = Depends(get_event_manager),
) -> EventSettings:
    return manager.update_event_settings(data)


app.include_router(nominations)
app.include_router(attachments)
app.include_router(admin)
app.include_router(events)
