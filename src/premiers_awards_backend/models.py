from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class NominationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"


class ExportFormat(str, Enum):
    ZIP = "zip"
    PDF = "pdf"
    CSV = "csv"


class Nominee(BaseModel):
    firstname: str = ""
    lastname: str = ""
    organization: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.firstname} {self.lastname}".strip()


class Partner(BaseModel):
    organization: str = ""


class Nominator(BaseModel):
    firstname: str = ""
    lastname: str = ""
    title: str = ""
    email: str = ""


class Location(BaseModel):
    address: str = ""
    city: str = ""


class Contact(BaseModel):
    firstname: str = ""
    lastname: str = ""
    email: str = ""
    phone: str = ""


class VideoContact(Contact):
    locations: List[Location] = Field(default_factory=list)


class Contacts(BaseModel):
    primary: Contact = Field(default_factory=Contact)
    video: VideoContact = Field(default_factory=VideoContact)


class FilePaths(BaseModel):
    nomination: str = ""
    merged: str = ""


class UploadedFile(BaseModel):
    path: str
    originalname: str
    mimetype: str = "application/pdf"
    size: int = 0


class AttachmentRecord(BaseModel):
    id: str
    nomination: str
    file: UploadedFile
    label: str = ""
    description: str = ""
    created_at: datetime
    updated_at: datetime

    @property
    def display_name(self) -> str:
        return self.label or self.file.originalname or "Attachment"


class NominationFields(BaseModel):
    """Editable nomination content shared by drafts, updates and records."""

    organizations: List[str] = Field(default_factory=list)
    title: str = ""
    nominee: Nominee = Field(default_factory=Nominee)
    nominees: int = 0
    partners: List[Partner] = Field(default_factory=list)
    contacts: Contacts = Field(default_factory=Contacts)
    nominators: List[Nominator] = Field(default_factory=list)
    acknowledgment: bool = False
    evaluation: Dict[str, str] = Field(default_factory=dict)


class NominationRecord(NominationFields):
    id: str
    seq: int = 0
    category: str
    year: Optional[int] = None
    guid: str
    owner: Optional[str] = None
    submitted: bool = False
    saved: bool = False
    file_paths: FilePaths = Field(default_factory=FilePaths)
    attachments: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @field_validator("category")
    @classmethod
    def _category_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("category is required")
        return value

    @field_validator("seq")
    @classmethod
    def _seq_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("seq must not be negative")
        return value

    @property
    def status(self) -> NominationStatus:
        return NominationStatus.SUBMITTED if self.submitted else NominationStatus.DRAFT


class NominationCreate(NominationFields):
    guid: str
    owner: Optional[str] = None
    category: str
    year: Optional[int] = None


class NominationUpdate(BaseModel):
    organizations: Optional[List[str]] = None
    title: Optional[str] = None
    nominee: Optional[Nominee] = None
    nominees: Optional[int] = None
    partners: Optional[List[Partner]] = None
    contacts: Optional[Contacts] = None
    nominators: Optional[List[Nominator]] = None
    acknowledgment: Optional[bool] = None
    evaluation: Optional[Dict[str, str]] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SubmitRequest(NominationUpdate):
    year: Optional[int] = None


class ExportRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)
    year: Optional[int] = None


class AttachmentUpdate(BaseModel):
    label: Optional[str] = None
    description: Optional[str] = None


class GlobalSetting(BaseModel):
    id: str
    type: str
    label: str = ""
    value: str


class SettingCreate(BaseModel):
    type: str = ""
    label: str = ""
    value: str = ""


class SettingUpdate(BaseModel):
    type: Optional[str] = None
    label: Optional[str] = None
    value: Optional[str] = None


class SchemaOptions(BaseModel):
    categories: List[Dict[str, Any]]
    evaluation_sections: List[Dict[str, Any]]
    organizations: List[Dict[str, Any]]
    status: List[Dict[str, Any]]


class RegenerationSummary(BaseModel):
    regenerated: List[str]
    failed: Dict[str, str]


class ExportLink(BaseModel):
    url: str
    expires_in: int


# Awards event: table registrations, guests and seating


class RegistrationUser(BaseModel):
    guid: str
    username: str = ""


class RegistrationFields(BaseModel):
    registrar: str = ""
    users: List[RegistrationUser] = Field(default_factory=list)
    organization: str = ""
    branch: str = ""
    primarycontact: str = ""
    primaryemail: str = ""
    financialcontact: str = ""
    clientministry: str = ""
    respcode: str = ""
    serviceline: str = ""
    stob: str = ""
    project: str = ""
    submitted: bool = False


class RegistrationRecord(RegistrationFields):
    id: str
    guid: str = ""
    guests: List[str] = Field(default_factory=list)
    table: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RegistrationCreate(RegistrationFields):
    guid: str = ""


class RegistrationUpdate(BaseModel):
    registrar: Optional[str] = None
    organization: Optional[str] = None
    branch: Optional[str] = None
    primarycontact: Optional[str] = None
    primaryemail: Optional[str] = None
    financialcontact: Optional[str] = None
    clientministry: Optional[str] = None
    respcode: Optional[str] = None
    serviceline: Optional[str] = None
    stob: Optional[str] = None
    project: Optional[str] = None
    submitted: Optional[bool] = None
    table: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RegistrationLists(BaseModel):
    """Values added to or removed from a registration's list fields."""

    users: List[RegistrationUser] = Field(default_factory=list)
    guests: List[str] = Field(default_factory=list)


class GuestFields(BaseModel):
    firstname: str = ""
    lastname: str = ""
    attendancetype: str = ""
    organization: str = ""
    pronouns: List[str] = Field(default_factory=list)
    custompronouns: str = ""
    hascustompronouns: bool = False
    hasexternalorganization: bool = False
    supportingfinalist: str = ""
    accessibility: List[str] = Field(default_factory=list)
    dietary: List[str] = Field(default_factory=list)
    notes: str = ""


class GuestRecord(GuestFields):
    id: str
    guid: str
    registration: str
    table: Optional[str] = None
    seat: str = ""
    created_at: datetime
    updated_at: datetime


class GuestCreate(GuestFields):
    guid: Optional[str] = None
    registration: str


class GuestUpdate(BaseModel):
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    attendancetype: Optional[str] = None
    organization: Optional[str] = None
    pronouns: Optional[List[str]] = None
    custompronouns: Optional[str] = None
    hascustompronouns: Optional[bool] = None
    hasexternalorganization: Optional[bool] = None
    supportingfinalist: Optional[str] = None
    accessibility: Optional[List[str]] = None
    dietary: Optional[List[str]] = None
    notes: Optional[str] = None
    table: Optional[str] = None
    seat: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TableRecord(BaseModel):
    id: str
    guid: str
    tablename: str
    tablecapacity: int
    tableindex: int
    tabletype: str
    organizations: List[str] = Field(default_factory=list)
    registrations: List[str] = Field(default_factory=list)
    guests: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @field_validator("tablename", "tabletype")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("tablecapacity")
    @classmethod
    def _capacity_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("tablecapacity must be at least 1")
        return value


class TableCreate(BaseModel):
    tablename: str = ""
    tablecapacity: Optional[int] = None
    tableindex: Optional[int] = None
    tabletype: str = ""
    organizations: List[str] = Field(default_factory=list)


class TableUpdate(BaseModel):
    tablename: Optional[str] = None
    tablecapacity: Optional[int] = None
    tableindex: Optional[int] = None
    tabletype: Optional[str] = None
    organizations: Optional[List[str]] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TableLists(BaseModel):
    """Values added to or removed from a table's list fields."""

    organizations: List[str] = Field(default_factory=list)
    registrations: List[str] = Field(default_factory=list)
    guests: List[str] = Field(default_factory=list)


class TableCount(BaseModel):
    count: int


class EventSettings(BaseModel):
    year: int
    salesopen: datetime
    salesclose: datetime


class EventSettingsUpdate(BaseModel):
    year: Optional[int] = None
    salesopen: Optional[datetime] = None
    salesclose: Optional[datetime] = None
